from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_path = Path("README.md")
long_description = readme_path.read_text(encoding="utf-8")

# Read requirements file
requirements_path = Path("requirements.txt")
requirements = [
    line.strip()
    for line in requirements_path.read_text(encoding="utf-8").splitlines()
    if line.strip() and not line.startswith("#")
]

setup(
    name="sccrawl",
    version="0.3.0",
    description="SSH CDP/LLDP neighbor crawler with TextFSM-syntax and regex templates",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["sccrawl", "sccrawl.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: System :: Networking",
        "Topic :: System :: Monitoring",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    package_data={
        "sccrawl": [
            "templates/*.textfsm",
            "templates/*.yaml",
        ],
    },
    include_package_data=True,
    entry_points={
        'console_scripts': ['sccrawl=sccrawl.discovery.cli:main']
    },
)
