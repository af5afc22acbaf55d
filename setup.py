from setuptools import setup, find_packages

setup(
    name="atomica",
    version="0.1.0",
    description="atomica — region-based rely/guarantee atomicity verifier front-end",
    packages=find_packages(include=["atomica", "atomica.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0", "hypothesis>=6.0"],
    },
)
