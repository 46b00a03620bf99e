# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Checks on source code files."""

import ast
from pathlib import Path

TOP_LEVEL_DIR = (Path(__file__).parent / "..").resolve()
PACKAGE_DIRECTORIES = [TOP_LEVEL_DIR / "dispfield", TOP_LEVEL_DIR / "dispfield_tests"]
EXAMPLES_DIRECTORY = TOP_LEVEL_DIR / "doc" / "source" / "examples"


def self_licence():
    """Collect licence text from this file"""
    licence_lines = []
    for line in Path(__file__).read_text().splitlines():
        if not line.startswith("#"):
            break
        licence_lines.append(line)
    return "\n".join(licence_lines)


def python_files(directories):
    """Non-empty python files below the given directories"""
    for directory in directories:
        for file in sorted(directory.glob("**/*.py")):
            # skip zero-byte files such as empty __init__.py
            if file.stat().st_size > 0:
                yield file


def test_py_licence():
    """
    Check that non-empty python files, including the documentation examples,
    contain 3-clause BSD licence text
    """
    licence_text = self_licence()
    failed_files = [
        str(file)
        for file in python_files(PACKAGE_DIRECTORIES + [EXAMPLES_DIRECTORY])
        if licence_text not in file.read_text()
    ]
    assert len(failed_files) == 0, "\n".join(failed_files)


def test_module_docstrings():
    """Check that non-empty modules of the package describe themselves"""
    failed_files = [
        str(file)
        for file in python_files([TOP_LEVEL_DIR / "dispfield"])
        if not ast.get_docstring(ast.parse(file.read_text()))
    ]
    assert len(failed_files) == 0, "\n".join(failed_files)


def test_init_files_exist():
    """Check for missing __init__.py files."""
    failed_directories = []
    for directory in PACKAGE_DIRECTORIES:
        for path in directory.glob("**"):
            if not path.is_dir():
                continue
            # hidden directories, their contents and pycache are not packages
            if any(part.startswith(".") for part in path.parts):
                continue
            if path.name == "__pycache__":
                continue
            if not (path / "__init__.py").exists():
                failed_directories.append(str(path))
    assert len(failed_directories) == 0, "\n".join(failed_directories)
