from setuptools import find_packages, setup

setup(
    name="fem-panel",
    version="0.1.0",
    description="Nonlinear 2D structural element residual, Jacobian and sensitivity assembly",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
        "pyyaml",
    ],
    extras_require={
        "tests": ["pytest"],
    },
)
