import json
import sys

from api_schema_ingestion.runner import IngestionRunner

if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    config_path = args[0] if args else "config/config.json"
    runner = IngestionRunner.from_config_file(config_path, log_dir="logs")

    if "--smoke-test" in sys.argv:
        outcome = runner.smoke_test()
        print(json.dumps({
            "success": outcome.success,
            "message": outcome.message,
            "error": outcome.error,
            "suggested_page_fields": outcome.suggested_page_fields,
            "schema": outcome.schema.to_dict() if outcome.schema else None,
        }, indent=2, default=str))
        sys.exit(0 if outcome.success else 1)

    result = runner.run()
    print(json.dumps(result.schema.to_dict(), indent=2, default=str))
