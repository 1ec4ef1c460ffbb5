from setuptools import setup, find_namespace_packages

setup(
    name="wstack",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["wstack*"]),
    package_dir={"": "src"},
    package_data={"wstack.SERVICES": ["*.Dockerfile", "*.j2"]},
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "tenacity>=8.0",
        "python-dotenv>=1.0",
        "jinja2>=3.0",
        "docker>=7.0",
        "requests>=2.31",
        "structlog>=24.1",
        "rich>=13.0",
        "protobuf>=4.21",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "black>=23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "wstack=wstack.CLI.main:main",
        ],
    },
)
