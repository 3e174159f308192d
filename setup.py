#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
from setuptools import setup

scriptPath = os.path.abspath( os.path.dirname( __file__ ) )
with open( os.path.join( scriptPath, 'README.md' ), encoding = 'utf-8' ) as file:
    readmeContents = file.read()

setup(
    name             = 'githubmount',
    version          = '0.3.0',

    description      = 'Lazily Populated Read-Only GitHub Mount',
    license          = 'MIT',
    classifiers      = [ 'License :: OSI Approved :: MIT License',
                         'Development Status :: 4 - Beta',
                         'Natural Language :: English',
                         'Operating System :: MacOS',
                         'Operating System :: Unix',
                         'Programming Language :: Python :: 3',
                         'Programming Language :: Python :: 3.9',
                         'Programming Language :: Python :: 3.10',
                         'Programming Language :: Python :: 3.11',
                         'Programming Language :: Python :: 3.12',
                         'Topic :: System :: Filesystems' ],

    long_description = readmeContents,
    long_description_content_type = 'text/markdown',

    python_requires  = '>=3.9',
    packages         = [ 'githubmountcore', 'githubmountcore.tree', 'githubmountcore.remote', 'githubmount' ],
    install_requires = [
        'fusepy',
        'httpx',
        'indexed_gzip>=1.6.3',
    ],
    # Make these optional requirements because they have no binaries on PyPI for all platforms meaning they
    # are built from source and will fail if system dependencies are not installed.
    extras_require   = {
        'full'  : [ 'rapidgzip>=0.13.1', 'rich' ],
        'gzip'  : [ 'rapidgzip>=0.13.1' ],
        'test'  : [ 'pytest' ],
    },
    entry_points = { 'console_scripts': [ 'githubmount=githubmount.cli:cli' ] }
)
