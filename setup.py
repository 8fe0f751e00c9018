# setup.py

from setuptools import setup, find_packages

setup(
    name="lidar-camera-fusion",
    version="0.1.0",
    description="LiDAR/camera fusion of 2D detections into per-object 3D positions",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["example_fusion"],
    install_requires=[
        "numpy>=1.19.0",
        "opencv-python>=4.5.0",
        "pyyaml>=5.1",
        "scipy>=1.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.12.0",
            "black>=21.5b2",
            "isort>=5.9.1",
            "flake8>=3.9.2",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    entry_points={
        "console_scripts": [
            "lidar-fusion=example_fusion:main",
        ],
    },
)
