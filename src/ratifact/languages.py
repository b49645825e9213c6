"""Project language and build tool detection from marker files."""

from __future__ import annotations

from pathlib import Path

UNKNOWN_LANGUAGE = "Unknown"

# First match wins, so more specific markers come first
LANGUAGE_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("Cargo.toml",), "Rust"),
    (("package.json",), "JavaScript"),
    (("pyproject.toml",), "Python"),
    (("go.mod",), "Go"),
    (("Makefile", "CMakeLists.txt", "configure.ac"), "C/C++"),
    (("pom.xml", "build.gradle"), "Java"),
    (("composer.json",), "PHP"),
    (("Gemfile",), "Ruby"),
    (("Package.swift",), "Swift"),
    (("build.gradle.kts",), "Kotlin"),
    (("build.sbt",), "Scala"),
    (("stack.yaml",), "Haskell"),
    (("mix.exs",), "Elixir"),
)

BUILD_COMMANDS: tuple[tuple[str, list[str]], ...] = (
    ("Cargo.toml", ["cargo", "build"]),
    ("package.json", ["npm", "run", "build"]),
    ("go.mod", ["go", "build", "./..."]),
    ("pom.xml", ["mvn", "package"]),
    ("build.gradle", ["gradle", "build"]),
    ("build.gradle.kts", ["gradle", "build"]),
    ("pyproject.toml", ["python", "-m", "build"]),
    ("Makefile", ["make"]),
)


def detect_language(project: Path) -> str:
    """Classify a project directory by the marker files it contains.

    Args:
        project: Project directory (the parent of an artifact).

    Returns:
        Language name, or ``"Unknown"``.

    """
    for markers, language in LANGUAGE_MARKERS:
        if any((project / marker).exists() for marker in markers):
            return language
    return UNKNOWN_LANGUAGE


def rebuild_command(project: Path) -> list[str] | None:
    """Return the build command for a project, or None if unrecognized."""
    for marker, command in BUILD_COMMANDS:
        if (project / marker).exists():
            return list(command)
    return None
