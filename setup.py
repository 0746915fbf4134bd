# setup.py
from setuptools import setup, find_packages

setup(
    name="rotacompass",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "python-dateutil",
        "matplotlib",
        "reportlab",
    ],
    extras_require={
        "test": ["pytest", "pypdf"],
    },
    entry_points={
        "console_scripts": [
            "rotacompass=rotacompass.main:run_wizard",
            "rotacompass-generate=rotacompass.main:run_due_generation",
            "rotacompass-export=rotacompass.main:run_rota_export",
        ],
    },
)
