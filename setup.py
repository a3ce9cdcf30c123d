from setuptools import setup, find_namespace_packages

setup(
    name="rbibli",
    version="0.1.0",
    packages=find_namespace_packages(include=['cli*', 'rbibli*']),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "Click",
        "SQLAlchemy>=2.0",
        "Pillow",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "rbibli=cli.main:main",
        ],
    },
)
