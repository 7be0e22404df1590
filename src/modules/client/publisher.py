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

"""Package sources.

A package source publishes, for each package name, the set of available
versions together with the dependencies declared by each version, and can
retrieve the payload (the file tree) of a given version.  Sources are only
ever read by the upgrade engine."""

import errno
import os
from collections import namedtuple

import jsonschema
import simplejson as json

import pkgup.client.api_errors as apx
import pkgup.misc as misc
import pkgup.version as version
from pkgup.client import global_settings

logger = global_settings.logger

# The dependency of one package version on another package.  'constraint' is
# a pkgup.version.Constraint object.
Dependency = namedtuple("Dependency", ["name", "constraint"])

# name of the metadata file of a published version
PKGINFO_FILE = "pkginfo.json"
# name of the directory holding the payload of a published version
PAYLOAD_DIR = "payload"

_PKGINFO_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "pkgup package metadata",
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "version": {"type": "string", "minLength": 1},
        "dependencies": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "version": {"type": "string"},
                },
                "required": ["name"],
            },
        },
    },
    "required": ["name", "version"],
}


class PackageMetadata(object):
        """The versions of one package known to the configured sources and
        the dependencies each of them declares."""

        def __init__(self, name):
                self.name = name
                self.__deps = {}
                self.__sources = {}

        def __str__(self):
                return "{0} ({1})".format(self.name,
                    ", ".join(str(v) for v in self.versions))

        def add_version(self, ver, dependencies=misc.EmptyI, source=None):
                """Records 'ver' with its dependencies.  A version that is
                already known is not replaced, so the first source to publish
                a version wins."""

                ver = version.Version(ver)
                if ver in self.__deps:
                        return False
                self.__deps[ver] = tuple(dependencies)
                self.__sources[ver] = source
                return True

        @property
        def versions(self):
                """The available versions in ascending order."""
                return tuple(sorted(self.__deps))

        @property
        def newest(self):
                """The newest available version or None."""
                versions = self.versions
                return versions and versions[-1] or None

        def has_version(self, ver):
                return ver in self.__deps

        def dependencies(self, ver):
                """Returns the tuple of Dependency objects declared by 'ver'."""
                return self.__deps[ver]

        def source(self, ver):
                """Returns the source that published 'ver'."""
                return self.__sources[ver]


class PackageSource(object):
        """The interface that package sources provide."""

        name = None

        def get_metadata(self, name):
                """Returns a PackageMetadata object for the named package, or
                None if this source does not publish it."""
                raise NotImplementedError

        def fetch_payload(self, name, ver, dest):
                """Retrieves the payload of 'name' at 'ver' into the directory
                'dest', which must not exist.  Raises PayloadUnavailable on
                failure."""
                raise NotImplementedError


class DirectorySource(PackageSource):
        """A package source backed by a local directory tree of the form
        <root>/<name>/<version>/pkginfo.json and
        <root>/<name>/<version>/payload/."""

        def __init__(self, root, name=None):
                self.root = root
                self.name = name or os.path.basename(os.path.normpath(root))
                self.__cache = {}

        def __str__(self):
                return "{0} ({1})".format(self.name, self.root)

        def __load_pkginfo(self, pathname):
                try:
                        with open(pathname, "r") as f:
                                info = json.load(f)
                except EnvironmentError as e:
                        raise apx._convert_error(e)
                except ValueError as e:
                        raise apx.InvalidMetadataError(pathname, detail=str(e))

                try:
                        jsonschema.validate(info, _PKGINFO_SCHEMA)
                except jsonschema.ValidationError as e:
                        err = apx.InvalidMetadataError(pathname,
                            detail=e.message)
                        if e.absolute_path:
                                err.add_verbose_info([_("at: {0}").format(
                                    "/".join(str(p) for p in
                                    e.absolute_path))])
                        raise err

                deps = []
                try:
                        ver = version.Version(info["version"])
                        for d in info.get("dependencies", []):
                                deps.append(Dependency(d["name"],
                                    version.parse_constraint(
                                    d.get("version"))))
                except version.VersionError as e:
                        raise apx.InvalidMetadataError(pathname,
                            detail=_("invalid version '{0}'").format(e))
                return ver, deps

        def get_metadata(self, name):
                if name in self.__cache:
                        return self.__cache[name]

                pkgdir = os.path.join(self.root, name)
                try:
                        entries = sorted(os.listdir(pkgdir))
                except EnvironmentError as e:
                        if e.errno in (errno.ENOENT, errno.ENOTDIR):
                                self.__cache[name] = None
                                return None
                        raise apx._convert_error(e)

                md = PackageMetadata(name)
                for entry in entries:
                        pathname = os.path.join(pkgdir, entry, PKGINFO_FILE)
                        if not os.path.isfile(pathname):
                                continue
                        ver, deps = self.__load_pkginfo(pathname)
                        if str(ver) != entry:
                                logger.debug("{0}: version {1} published in "
                                    "directory {2}".format(self, ver, entry))
                        md.add_version(ver, deps, source=self)

                if not md.versions:
                        md = None
                self.__cache[name] = md
                return md

        def __version_dir(self, name, ver):
                pkgdir = os.path.join(self.root, name)
                path = os.path.join(pkgdir, str(ver))
                if os.path.isdir(path):
                        return path
                # The directory name may spell the version differently.
                for entry in sorted(os.listdir(pkgdir)):
                        try:
                                if version.Version(entry) == ver:
                                        return os.path.join(pkgdir, entry)
                        except version.VersionError:
                                continue
                return path

        def fetch_payload(self, name, ver, dest):
                src = os.path.join(self.__version_dir(name, ver), PAYLOAD_DIR)
                if not os.path.isdir(src):
                        raise apx.PayloadUnavailable(name, ver,
                            detail=_("{0} does not exist").format(src))
                try:
                        misc.copytree(src, dest)
                except (apx.ApiException, EnvironmentError) as e:
                        raise apx.PayloadUnavailable(name, ver, detail=str(e))


class SourceCatalog(object):
        """The merged view of an ordered list of package sources.  When more
        than one source publishes the same version of a package, the source
        listed first is used."""

        def __init__(self, sources):
                self.sources = list(sources)
                self.__cache = {}

        def get_metadata(self, name):
                """Returns the merged PackageMetadata for the named package or
                None if no source publishes it."""

                if name in self.__cache:
                        return self.__cache[name]

                merged = None
                for src in self.sources:
                        md = src.get_metadata(name)
                        if md is None:
                                continue
                        if merged is None:
                                merged = PackageMetadata(name)
                        for ver in md.versions:
                                merged.add_version(ver, md.dependencies(ver),
                                    source=md.source(ver) or src)
                self.__cache[name] = merged
                return merged

        def fetch_payload(self, name, ver, dest):
                """Retrieves the payload of 'name' at 'ver' from the source that
                published it."""

                md = self.get_metadata(name)
                if md is None or not md.has_version(ver):
                        raise apx.PayloadUnavailable(name, ver)
                logger.debug("retrieving {0} {1} from {2}".format(name, ver,
                    md.source(ver)))
                md.source(ver).fetch_payload(name, ver, dest)
