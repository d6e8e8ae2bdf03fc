from setuptools import setup, find_packages

setup(
    name="api_schema_ingestion",
    version="0.1.0",
    description="Paginated REST API ingestion with relational schema inference",
    author="Filip Wagner",
    author_email="filip.wagner@takeda.com",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.0"
    ],
    extras_require={
        "test": ["pytest"]
    }
)
