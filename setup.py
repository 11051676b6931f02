from setuptools import setup, find_packages


setup(
    name="pf8",
    version="0.1",
    packages=find_packages(),
    description="Reader and writer for PF6/PF8 game-asset archives with keyed XOR encryption.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
)
