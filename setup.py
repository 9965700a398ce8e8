#!/usr/bin/env python3

from setuptools import setup
from setuptools import find_packages


setup(
    # Vitals
    name="sdramctl",
    version="0.1.0",
    license="BSD",
    url="https://lambdaconcept.com",
    author="LambdaConcept",
    author_email="contact@lambdaconcept.com",
    description="Cycle-accurate SDR SDRAM controller core",

    # Imports / exports / requirements
    platforms='any',
    packages=find_packages(exclude=("test*", "doc*", "examples*", "contrib*")),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=['amaranth>=0.4,<0.5'],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'sdramctl=sdramctl.cli:main',
        ],
    },

    # Metadata
    classifiers = [
        'Programming Language :: Python',
        'Development Status :: 3 - Alpha',
        'Natural Language :: English',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering',
        'Topic :: System :: Hardware',
        ],
)
