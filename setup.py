#!/usr/bin/python3
#!/usr/bin/python
#
# CDDL HEADER START
#
# The contents of this file are subject to the terms of the
# Common Development and Distribution License (the "License").
# You may not use this file except in compliance with the License.
#
# You can obtain a copy of the license at usr/src/OPENSOLARIS.LICENSE
# or http://www.opensolaris.org/os/licensing.
# See the License for the specific language governing permissions
# and limitations under the License.
#
# When distributing Covered Code, include this CDDL HEADER in each
# file and include the License file at usr/src/OPENSOLARIS.LICENSE.
# If applicable, add the following below this CDDL HEADER, with the
# fields enclosed by brackets "[]" replaced with your own identifying
# information: Portions Copyright [yyyy] [name of copyright owner]
#
# CDDL HEADER END
#

#
# Copyright (c) 2024, Oracle and/or its affiliates. All rights reserved.
#

from setuptools import setup

packages = [
        'pkgup',
        'pkgup.client',
        'pkgup.file_layout',
        ]

install_requires = [
        'jsonschema',
        'simplejson',
        ]

extras_require = {
        'test': ['pytest'],
        }

setup(
    name = 'pkgup',
    version = '0.9.0',
    description = 'Transactional package upgrade engine',
    package_dir = {'pkgup': 'src/modules'},
    packages = packages,
    install_requires = install_requires,
    extras_require = extras_require,
    python_requires = '>=3.7',
    entry_points = {
        'console_scripts': ['pkgup = pkgup.client.cli:main'],
        },
    )
