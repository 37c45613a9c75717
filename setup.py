"""
Setup script for h5bind

h5bind is pure Python; libhdf5 itself is loaded at runtime through ctypes.
The library is looked up in this order:
1. An explicit path in H5BIND_LIBRARY_PATH
2. The copy bundled with an installed h5py wheel
3. The system library search path
"""

from pathlib import Path
from setuptools import setup, find_packages


# Read version from src/h5bind/__init__.py
def get_version():
    version_file = Path("src/h5bind/__init__.py")
    if version_file.exists():
        for line in version_file.read_text().splitlines():
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"').strip("'")
    return "0.1.0"


# Read long description from README
def get_long_description():
    readme = Path("README.md")
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


setup(
    name="h5bind",
    version=get_version(),
    description="ctypes binding layer over the HDF5 C library",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20",
        # ships a libhdf5 that h5bind can load
        "h5py>=3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    zip_safe=False,  # libhdf5 is located relative to installed packages
)
