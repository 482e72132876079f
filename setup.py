from pathlib import Path

from setuptools import find_packages, setup

cwd = Path(__file__).parent
description_file = cwd / "doc" / "pypi-description.md"
if description_file.is_file():
    long_description = description_file.read_text()
else:
    long_description = ""

setup(
    name="cpflow",
    version="0.1.0",
    description="Continuation power flow and small-signal stability of power systems",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(include=["cpflow", "cpflow.*"]),
    python_requires=">=3.9",
    install_requires=["numpy", "scipy", "matplotlib", "numdifftools"],
    extras_require={"dev": ["pytest", "nox", "ruff", "mypy"]},
)
