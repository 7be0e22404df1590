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

"""An Image is an install root: the library directory holding the installed
packages, the backup and holding directories used while upgrading them, and
the metadata directory holding configuration and history."""

import errno
import os
from collections import namedtuple

import pkgup.client.api_errors as apx
import pkgup.client.imageconfig as imageconfig
import pkgup.file_layout.layout as layout
import pkgup.file_layout.migrator as migrator
import pkgup.manifest as manifest
import pkgup.misc as misc
import pkgup.version as version
from pkgup.client import global_settings, pkgdefs

logger = global_settings.logger

# A package installed below the library directory.  'layout' is one of the
# pkgdefs.LAYOUT_* constants, 'manifest' the pkgup.manifest.Manifest of the
# files the package delivered (empty if it was not recorded).
InstalledPackage = namedtuple("InstalledPackage", ["name", "version",
    "layout", "path", "manifest"])


class Image(object):
        """An Image object provides the view of the packages installed below
        an install root."""

        def __init__(self, root, cfg=None):
                self.root = os.path.abspath(root)
                if cfg is None:
                        cfg = imageconfig.ImageConfig(self.root)
                self.cfg = cfg
                self.lib_dir = cfg.get_dir("lib-dir")
                self.backup_dir = cfg.get_dir("backup-dir")
                self.holding_dir = cfg.get_dir("holding-dir")
                self.meta_dir = os.path.join(self.root, pkgdefs.META_DIR)
                self.__migrator = migrator.LayoutMigrator(self.lib_dir)

        def __str__(self):
                return self.root

        def __read_package(self, path):
                """Returns the InstalledPackage at 'path' or None if 'path'
                does not hold a recognizable package."""

                try:
                        mfst = manifest.Manifest.load(path)
                except apx.InvalidMetadataError as e:
                        # The directory name still identifies the package.
                        logger.debug("{0}: ignoring manifest: {1}".format(
                            path, e))
                        mfst = None
                l, name, ver = self.__migrator.classify(path)
                if mfst is not None and mfst.name:
                        name = mfst.name
                        ver = mfst.version or ver
                else:
                        mfst = manifest.Manifest(name=name, version=ver)

                if not ver:
                        logger.debug("{0}: unable to determine the installed "
                            "version; ignoring it".format(path))
                        return None
                try:
                        ver = version.Version(ver)
                except version.VersionError:
                        logger.debug("{0}: invalid version {1}; ignoring "
                            "it".format(path, ver))
                        return None

                dirname = os.path.basename(path)
                if layout.CanonicalLayout().contains(path, name, ver):
                        kind = pkgdefs.LAYOUT_CANONICAL
                elif layout.LegacyLayout().contains(path, name, ver):
                        kind = pkgdefs.LAYOUT_LEGACY
                else:
                        logger.debug("{0}: directory {1} does not match "
                            "{2} {3}".format(self, dirname, name, ver))
                        kind = l.kind
                return InstalledPackage(name, ver, kind, path, mfst)

        def get_all_installed(self):
                """Returns a dictionary, indexed by package name, of the lists
                of InstalledPackage objects found below the library directory,
                ordered by version."""

                found = {}
                try:
                        entries = sorted(os.listdir(self.lib_dir))
                except EnvironmentError as e:
                        e = apx._convert_error(e,
                            ignored_errors=(errno.ENOENT,))
                        if e is None:
                                return found
                        raise e

                for entry in entries:
                        path = os.path.join(self.lib_dir, entry)
                        if not os.path.isdir(path):
                                continue
                        pkg = self.__read_package(path)
                        if pkg is not None:
                                found.setdefault(pkg.name, []).append(pkg)
                for pkgs in found.values():
                        pkgs.sort(key=lambda p: p.version)
                return found

        def installed_packages(self):
                """Returns a dictionary of the primary InstalledPackage of
                each installed package indexed by name.  The canonical
                directory of a package is its primary install; a package only
                found in legacy directories is represented by its highest
                version."""

                installed = {}
                for name, pkgs in self.get_all_installed().items():
                        canonical = [
                            p for p in pkgs
                            if p.layout == pkgdefs.LAYOUT_CANONICAL
                        ]
                        installed[name] = canonical and canonical[-1] or \
                            pkgs[-1]
                return installed

        def get_installed(self, name):
                """Returns the primary InstalledPackage for the named package
                or None if it is not installed."""
                return self.installed_packages().get(name)

        def staging_dir(self, name):
                """Returns a path, which does not exist, where the payload of
                the named package may be staged."""

                path = os.path.join(self.meta_dir, "staging",
                    "{0}-{1}".format(name, global_settings.client_runid))
                misc.rmtree(path)
                misc.makedirs(os.path.dirname(path))
                return path

        def write_manifest(self, path, name, ver, payload=None,
            dependencies=None):
                """Records the manifest of the package installed at 'path'.
                The files are those of 'payload' if provided, otherwise all
                files currently below 'path'.  'dependencies' is an optional
                list of (name, constraint) tuples declared by the package."""

                mfst = manifest.Manifest.from_tree(payload or path, name=name,
                    version=str(ver))
                if dependencies is not None:
                        mfst.dependencies = [
                            (n, str(c)) for n, c in dependencies
                        ]
                mfst.store(path)
                return mfst
