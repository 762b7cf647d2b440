from setuptools import setup, find_packages

with open('README.md', 'r') as f:
    long_description = f.read()

with open('requirements.txt') as f:
    requirements = f.read().splitlines()


setup(
    name='glacierbackup',
    version='0.3.0',
    license='MIT',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=requirements,
    python_requires='>=3.8',
    entry_points={
        'console_scripts': [
            'glacierbackup = glacierbackup.glacierbackup:main'
        ]
    },
    long_description=long_description,
    long_description_content_type='text/markdown',
)
