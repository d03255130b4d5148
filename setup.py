#!/usr/bin/python3
# Setup file for ancestry
# Copyright (C) 2026 The ancestry authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

setup(
    package_data={"": ["py.typed"]},
)
