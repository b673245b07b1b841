from setuptools import setup, find_packages

setup(
    name="fixed_income_ledger",
    version="0.1.0",
    description="Bond position ledger and rebalancing policy",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "pydantic>=2",
        "PyYAML",
    ],
    extras_require={
        "test": [
            "pytest",
            "hypothesis",
        ],
    },
    python_requires=">=3.8",
)
