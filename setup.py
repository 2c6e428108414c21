from setuptools import setup, find_packages

setup(
    name             = 'pinpoint-coordinator',
    version          = '1.0.0',
    description      = 'Pinpoint — background location reporting coordinator',
    author           = 'Nous Loop Solutions',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest', 'httpx'],
    },
    entry_points     = {
        'console_scripts': [
            'pinpoint = pinpoint.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
