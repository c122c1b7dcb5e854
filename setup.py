"""
immirag Setup Script

Install with: pip install -e .
With the local embedding model: pip install -e ".[embeddings]"
"""

from setuptools import setup, find_packages

setup(
    name='immirag',
    version='0.1.0',
    description='Hybrid retrieval (vector + knowledge graph) for an immigration assistant',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={
        'immirag.config': ['*.yaml'],
    },
    install_requires=[
        'pydantic>=2.5.0',
        'pyyaml>=6.0.1',
        'aiohttp>=3.9.0',
        'structlog>=23.2.0',
        'falkordb>=1.0.0',
        'qdrant-client>=1.10.0',
    ],
    extras_require={
        'embeddings': [
            'sentence-transformers>=2.2.0',
        ],
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    python_requires='>=3.11',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Artificial Intelligence',
    ],
)
