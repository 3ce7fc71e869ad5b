# -*- coding: utf-8 -*-
"""Define project metadata
"""

__title__ = "afilecache"
__summary__ = "A file cache safe for concurrent use by many processes."

__version__ = "0.3.0"

__install_requires__ = ["anyio", "blake3"]
__tests_require__ = ["pytest", "tox"]

__license__ = "MIT License"
