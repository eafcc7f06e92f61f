from setuptools import setup, find_packages


setup(
    name="stfs",
    version="0.1",
    packages=find_packages(include=["stfs", "stfs.*"]),
    description="Reader and extractor for STFS (CON/LIVE/PIRS) packages.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "stfs=stfs.cli:main",
        ]
    },
)
