from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="fractal-raster",
    version="1.0.0",
    author="Fractal Raster",
    description="Escape-time fractal rendering into RGBA rasters with perceptual coloring",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["fractal_raster", "fractal_raster.*"]),
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "fractal-raster=fractal_raster.cli.main:main",
        ],
    },
)
