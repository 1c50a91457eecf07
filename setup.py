from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="proxy-log-analyzer",
    version="1.0.0",
    description="Web proxy log ingestion, security analytics and LLM anomaly detection with CLI and REST API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(where="src", include=["proxy_log_analyzer*"]),
    package_dir={"": "src"},
    package_data={
        "proxy_log_analyzer.prompts": ["*.txt"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Information Technology",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "click>=8.0.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.15.0",
        "rich>=10.0.0",
        "python-multipart>=0.0.5",
        "pydantic>=2.0.0",
        "SQLAlchemy>=2.0.0",
        "httpx>=0.24.0",
        "itsdangerous>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-benchmark>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "proxylog=proxy_log_analyzer.cli:cli",
            "proxylog-web=proxy_log_analyzer.web.app:start",
        ],
    },
)
