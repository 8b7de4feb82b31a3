from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="fusion-gateway",
    version="0.1.0",
    author="Fusion Team",
    author_email="fusion@example.com",
    description="A realtime data gateway with index-aware query planning and live subscriptions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/fusion-gateway/fusion",
    packages=find_packages(include=["fusion", "fusion.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Framework :: FastAPI",
    ],
    python_requires=">=3.10",
    install_requires=[
        "msgpack>=1.0.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "httpx>=0.24.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fusion-server=fusion.server.__main__:main",
        ],
    },
)
