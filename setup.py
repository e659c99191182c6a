"""
Setup script for Dimension History Library.
"""

from setuptools import setup, find_namespace_packages

# Read the README file
def read_readme():
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# Read requirements
def read_requirements():
    with open("requirements.txt", "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="dimension-history",
    version="1.0.0",
    author="Data Engineering Team",
    author_email="data-engineering@company.com",
    description="SCD Type 2 history maintenance and batch orchestration for Delta Lake dimension tables",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    # src/libraries is a namespace package shared with other team libraries
    packages=find_namespace_packages(where="src", include=["libraries.dimension_history*"]),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=2.12.0",
            "pytest-mock>=3.6.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="spark, delta, scd, dimensional, data-engineering, etl",
)
