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

"""The manifest of an installed package: the name and version that were
installed into a directory together with the content hash of every file the
package delivered there.  The manifest is what distinguishes files owned by
the package from files added by the user."""

import errno
import os

import simplejson as json

import pkgup.client.api_errors as apx
import pkgup.misc as misc

# Name of the manifest file kept at the top of every install directory.
MANIFEST_NAME = ".pkgup-manifest"

# Version of the manifest file format.
MANIFEST_VERSION = 1


class Manifest(object):
        """A Manifest maps the relative path of each file delivered by a
        package to the sha256 digest of its content."""

        def __init__(self, name=None, version=None, files=None,
            dependencies=None):
                self.name = name
                self.version = version
                self.files = dict(files or {})
                # A list of (name, constraint string) tuples, or None if the
                # dependencies were not recorded.
                self.dependencies = dependencies

        def __contains__(self, path):
                return path in self.files

        def __iter__(self):
                return iter(sorted(self.files))

        def __len__(self):
                return len(self.files)

        def __eq__(self, other):
                if not isinstance(other, Manifest):
                        return False
                return self.files == other.files

        def __ne__(self, other):
                return not self == other

        @classmethod
        def from_tree(cls, root, name=None, version=None):
                """Returns a Manifest describing every file below 'root'.  A
                manifest file already present in 'root' is not included."""

                files = {}
                for rel in misc.walk_files(root):
                        if rel == MANIFEST_NAME:
                                continue
                        path = os.path.join(root, rel)
                        if os.path.islink(path):
                                files[rel] = "link:" + os.readlink(path)
                        else:
                                files[rel] = misc.get_file_digest(path)
                return cls(name=name, version=version, files=files)

        @classmethod
        def load(cls, root):
                """Returns the Manifest stored in the install directory 'root',
                or None if there is none."""

                pathname = os.path.join(root, MANIFEST_NAME)
                try:
                        with open(pathname, "r") as f:
                                data = json.load(f)
                except EnvironmentError as e:
                        if e.errno == errno.ENOENT:
                                return None
                        raise apx._convert_error(e)
                except ValueError as e:
                        raise apx.InvalidMetadataError(pathname, detail=str(e))

                if not isinstance(data, dict) or \
                    not isinstance(data.get("files"), dict):
                        raise apx.InvalidMetadataError(pathname)
                deps = data.get("dependencies")
                if deps is not None:
                        try:
                                deps = [tuple(d) for d in deps]
                        except TypeError:
                                raise apx.InvalidMetadataError(pathname,
                                    detail=_("invalid dependencies"))
                return cls(name=data.get("name"), version=data.get("version"),
                    files=data["files"], dependencies=deps)

        def store(self, root):
                """Writes the manifest into the install directory 'root'."""

                pathname = os.path.join(root, MANIFEST_NAME)
                data = {
                    "manifest-version": MANIFEST_VERSION,
                    "name": self.name,
                    "version": self.version and str(self.version) or None,
                    "files": self.files,
                }
                if self.dependencies is not None:
                        data["dependencies"] = [
                            [n, str(c)] for n, c in self.dependencies
                        ]
                try:
                        with open(pathname, "w") as f:
                                json.dump(data, f, sort_keys=True, indent=2)
                except EnvironmentError as e:
                        raise apx._convert_error(e)

        def difference(self, other):
                """Compares this manifest (the origin) with 'other' (the
                destination) and returns a tuple of sorted lists of the form
                (added, changed, removed)."""

                added = sorted(p for p in other.files if p not in self.files)
                removed = sorted(p for p in self.files if p not in other.files)
                changed = sorted(
                    p for p in other.files
                    if p in self.files and self.files[p] != other.files[p]
                )
                return added, changed, removed

        def modified_files(self, root):
                """Returns a sorted list of files owned by this manifest whose
                content below 'root' no longer matches the recorded digest.
                Missing files are not included."""

                current = Manifest.from_tree(root)
                return sorted(
                    p for p in self.files
                    if p in current.files and current.files[p] != self.files[p]
                )
