from setuptools import setup, find_namespace_packages

setup(
    name="abtesting-engine",
    version="1.0.0",
    packages=find_namespace_packages(include=["src.abtesting*", "src.api*"]),
    python_requires=">=3.8",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.21.0",
        "scipy>=1.7.0",
        "Jinja2>=3.0.0",
        "matplotlib>=3.5.0",
        "Flask>=2.2.0",
        "requests>=2.28.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
)
