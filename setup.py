from setuptools import setup, find_namespace_packages

setup(
    name="pano-canopy",
    version="1.0.0",
    packages=find_namespace_packages(include=["PanoCanopy", "PanoCanopy.*"]),
    include_package_data=True,
    install_requires=[
        "opencv-python>=4.5.0",
        "numpy>=1.21.0",
        "Pillow>=9.0.0",
        "pandas>=1.3.0",
        "matplotlib>=3.4.0",
        "scikit-image>=0.19.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "pano-canopy=PanoCanopy.app:main",
        ],
    },
    python_requires=">=3.8",
    author="Your Name",
    author_email="your.email@example.com",
    description="Convert smartphone spherical panoramas into hemispherical images and estimate forest canopy gap fraction",
    keywords="canopy, forestry, hemispherical photography, gap fraction, image analysis",
    url="https://github.com/yourusername/pano-canopy",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
