from setuptools import find_namespace_packages, setup

setup(
    name="adversarial-attacks",
    version="0.1.0",
    description="Gradient-based adversarial perturbations (PGD / FGSM) for PyTorch models",
    packages=find_namespace_packages(include=["src", "src.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "torch",
        "omegaconf",
    ],
    extras_require={"test": ["pytest"]},
)
