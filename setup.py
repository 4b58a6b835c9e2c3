"""Setup script for Game Server Deploy"""

from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="gameserver-deploy",
    version="0.1.0",
    author="Artemis Games",
    description="Provision game servers from GitHub events across hosting providers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"gamedeploy": "src"},
    packages=[
        "gamedeploy",
        "gamedeploy.api",
        "gamedeploy.api.models",
        "gamedeploy.api.routes",
        "gamedeploy.integrations",
        "gamedeploy.providers",
    ],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: System :: Systems Administration",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "pyyaml",
        "ansible-core",
        "cryptography",
        "httpx",
        "tenacity",
        "PyJWT[crypto]",
        "fastapi<0.137",
        "pydantic>=2",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "gamedeploy=gamedeploy.cli:main",
        ],
    },
)
