from setuptools import find_packages, setup

setup(
    name='awsprov',
    version='0.1',
    py_modules=['awsprov'],
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'Click',
        'python-hcl2>=4,<5',
        'lark>=1,<2',
        'boto3',
        'botocore',
        'GitPython',
        'PyYAML',
        'tqdm'
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points='''
        [console_scripts]
        awsprov=awsprov:cli
    ''',
)
