"""Nox configuration file for automation."""

import nox

# Global options
nox.options.sessions = ["lint", "type_check", "test"]
nox.options.reuse_existing_virtualenvs = True


@nox.session(python=["3.11", "3.12", "3.13"])
def test(session):
    """Run tests with pytest."""
    session.install("-e", ".[dev]")
    session.run("pytest", *session.posargs)


@nox.session
def lint(session):
    """Lint with ruff."""
    session.install("ruff")
    session.run("ruff", "check", "cpflow", "tests")


@nox.session
def format(session):
    """Format with ruff."""
    session.install("ruff")
    session.run("ruff", "format", "cpflow", "tests")


@nox.session
def type_check(session):
    """Type check with mypy."""
    session.install("-e", ".[dev]")
    session.run("mypy", "cpflow")


@nox.session
def integration(session):
    """Run the slow integration tests only."""
    session.install("-e", ".[dev]")
    session.run("pytest", "tests/integration", *session.posargs)


@nox.session
def demo(session):
    """Run the OMIB Hopf demo."""
    session.install("-e", ".")
    session.chdir("demos/omib_hopf")
    session.run("python", "omib_hopf.py")
