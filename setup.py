from setuptools import setup

setup(
    name="dissect.regdump",
    version="1.0.0",
    packages=["dissect.regdump", "dissect.regdump.tools"],
    python_requires=">=3.9",
    install_requires=[
        "dissect.cstruct>=3.0.dev,<5.0.dev",
        "dissect.util>=3.0.dev,<4.0.dev",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "regdump=dissect.regdump.tools.dump:main",
        ],
    },
)
