"""
Setup file.
"""

import os

from setuptools import setup

URL = "https://github.com/zackees/pocketbuild"
KEYWORDS = "android apk build toolchain aapt2 d8 ndk on-device mobile"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
        include_package_data=True)
