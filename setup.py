"""
Setup script for torch-postreg.

Pure PyTorch; there are no compiled extensions. Install for development with:
    pip install -e ".[test]"
"""

from setuptools import find_packages, setup


def main():
    setup(
        name="torch-postreg",
        version="0.1.0",
        description="Posterior regularization (L1Lmax) for unsupervised dependency parsing in PyTorch",
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "torch>=2.0",
            "numpy",
        ],
        extras_require={
            "test": ["pytest"],
        },
    )


if __name__ == "__main__":
    main()
