from setuptools import setup, find_packages

setup(
    name="mkdocs-gotestdoc",
    version="1.0.0",
    description="MkDocs plugin and CLI documenting Go tests and their JUnit results",
    keywords="mkdocs go golang testing junit documentation python",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "mkdocs>=1.4",
        "tree-sitter-language-pack>=0.6,<1",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers = [
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Documentation",
        "Topic :: Software Development :: Testing",
        "Framework :: MkDocs",
    ],
    entry_points={
        "mkdocs.plugins": [
            "gotestdoc = mkdocs_gotestdoc.plugin:GoTestDocPlugin",
        ],
        "console_scripts": [
            "gotestdoc = mkdocs_gotestdoc.cli:main",
        ],
    },
)
