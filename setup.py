# setup.py
from setuptools import setup, find_packages

setup(
    name="content-synthesis-pipeline",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        'python-dotenv',
        'openai>=1.55.3',
        'tavily-python',
        'pydantic>=2',
        'tiktoken',
        'rapidfuzz',
        'cachetools',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
)
