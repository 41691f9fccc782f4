# -*- coding: utf-8 -*-
"""Define project metadata
"""

__title__ = "hashdrop"
__summary__ = "A content-addressed file drop with chunked uploads and size-aware retention."
__url__ = "https://github.com/dgilland/hashdrop"

__version__ = "0.1.0"

__install_requires__ = ["fs>=2.4.16", "setuptools<81", "pydantic-settings>=2.0"]
__tests_require__ = ["pytest"]

__author__ = "Derrick Gilland"
__email__ = "dgilland@gmail.com"

__license__ = "MIT License"
