from setuptools import setup, find_packages

setup(
    name="buttonsynth",
    version="0.1.0",
    packages=find_packages(include=["buttonsynth", "buttonsynth.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette>=0.36",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "httpx>=0.26",
        "openai>=1.66,<3",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "respx>=0.20",
        ],
    },
)
