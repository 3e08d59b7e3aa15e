from setuptools import setup, find_packages

setup(
    name="snippetjs",
    version="0.1.0",
    description="SnippetJS - metered JavaScript-subset interpreter with fixed-point arithmetic",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="SnippetJS Project",
    python_requires=">=3.9",
    packages=find_packages(),
    entry_points={
        "console_scripts": [
            "snippetjs=snippetjs.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Interpreters",
    ],
)
