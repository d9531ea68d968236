from setuptools import setup, find_packages
from os.path import dirname, join
import io

with open('README.md', encoding='utf-8') as readme_file:
    readme = readme_file.read()

def get_version(relpath):
    """Read version info from a file without importing it."""
    for line in io.open(join(dirname(__file__), relpath), encoding="utf-8"):
        if line.startswith("__version__"):
            return line.split("=")[1].strip().strip("'\"")

setup(
    name='hostcooc',
    version=get_version("hostcooc/__init__.py"),
    description='Host-pathogen co-occurrence across sequencing dataset collections',
    long_description=readme,
    long_description_content_type='text/markdown',
    author='hostcooc developers',
    license='GPL3+',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Topic :: Scientific/Engineering',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Programming Language :: Python :: 3',
    ],
    keywords="metagenomics co-occurrence host-pathogen bioinformatics",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires='>=3.8',
    include_package_data=True,
    install_requires=[
        'pandas>=1.5',
        'numpy>=1.20',
        'scipy>=1.7',
        'matplotlib>=3.4',
        'pyarrow>=10.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': [
            'hostcooc = hostcooc.__main__:main'
        ]
    },
)
