"""
Setup script for CipherRoom - Notes sealed with a shared code.

This package provides:
- Per-message encryption (PBKDF2-SHA256 key stretching + AES-256-GCM)
- An append-only, deduplicating local conversation log
- A session lock that forgets the shared code on demand
- Websocket relay sync with capped exponential backoff
- A minimal relay server that only ever sees sealed envelopes
- Cross-platform terminal UI
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='cipherroom',
    version='1.0.0',
    author='cipherroom contributors',
    description='Short notes encrypted with a shared code, synced through a blind websocket relay',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'Topic :: Security :: Cryptography',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.9',
    install_requires=[
        'textual>=0.47.0',
        'cryptography>=42.0.4',
        'aiohttp>=3.9.0',
        'aiofiles>=23.2.1',
        'rich>=13.7.0',
        'tomli>=2.0.1; python_version < "3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'cipherroom=cipherroom.main:main',
            'cipherroom-relay=cipherroom.relay_server:main',
        ],
    },
)
