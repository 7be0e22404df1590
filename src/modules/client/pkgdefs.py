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

"""
Definitions for values used by the pkgup upgrade engine.
"""

from collections import namedtuple

# pkgup exit codes
EXIT_OK        =  0 # Command succeeded.
EXIT_OOPS      =  1 # An error occurred.
EXIT_BADOPT    =  2 # Invalid command line options were specified.
EXIT_PARTIAL   =  3 # Multiple ops were requested, but not all succeeded.
EXIT_NOP       =  4 # No changes were made - nothing to do.

# package operations
PKG_OP_UPGRADE         = "upgrade"

# Directories below the install root.
LIB_DIR = "lib"                 # installed packages
BACKUP_DIR = "lib-bkp"          # backups of packages being upgraded
HOLDING_DIR = "lib-bad"         # payloads that failed to apply
META_DIR = ".pkgup"             # configuration, history, staging

# Resolution plan actions.
ACTION_UPGRADE = "upgrade"
ACTION_INSTALL = "install"
ACTION_SKIP = "skip"
ACTION_UNRESOLVABLE = "unresolvable"

# Request origins.
ORIGIN_EXPLICIT = "explicit"
ORIGIN_DEPENDENCY = "dependency"

# Outcome message severities.
SEVERITY_INFO = "Info"
SEVERITY_WARNING = "Warning"
SEVERITY_ERROR = "Error"

# On-disk package layouts.
LAYOUT_LEGACY = "legacy"
LAYOUT_CANONICAL = "canonical"

# Hook phases.
HOOK_PRE_UPGRADE = "pre-upgrade"
HOOK_POST_UPGRADE = "post-upgrade"

# The literal request for every installed package.
ALL_PACKAGES = "all"

# Request paths ending in these suffixes name package list manifests.
MANIFEST_SUFFIXES = (".config", ".nuspec", ".nupkg")

_UpgradeFlags = namedtuple("UpgradeFlags", ["noop", "force",
    "ignore_dependencies", "allow_multiple_versions", "fail_on_not_installed"])

class UpgradeFlags(_UpgradeFlags):
        """The options recognized by an upgrade run.

        noop                    evaluate only, never mutate
        force                   re-apply even without a newer version
        ignore_dependencies     exclude dependency edges for explicit roots
        allow_multiple_versions install side-by-side in versioned folders
        fail_on_not_installed   reject packages that are not installed
        """

        __slots__ = ()

        def __new__(cls, noop=False, force=False, ignore_dependencies=False,
            allow_multiple_versions=False, fail_on_not_installed=False):
                return _UpgradeFlags.__new__(cls, bool(noop), bool(force),
                    bool(ignore_dependencies), bool(allow_multiple_versions),
                    bool(fail_on_not_installed))
