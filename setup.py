from setuptools import setup, find_packages

setup(
    name="pfrac_pressurized",
    version="0.1.0",
    description="Pressurized Phase-Field Fracture with Active-Set Newton and Adaptive Refinement",
    author="pfrac Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "scipy>=1.12",
        "matplotlib>=3.4",
        "meshio>=5.0",
    ],
    extras_require={
        "dev": ["pytest>=6.0"],
    },
    entry_points={
        "console_scripts": ["pfrac=pfrac.cli:main"],
    },
)
