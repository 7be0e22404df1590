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

"""object to map package names and versions to install directories

The Layout class hierarchy encapsulates the mapping between a package (its
name and, for some layouts, its version) and the name of the directory below
the library directory that holds the package's files.

The CanonicalLayout places a package into a directory named after the
package alone.  Only one version of a package can be installed this way and
that directory is the primary, tracked install of the package.

The LegacyLayout places a package into a directory named after the package
and its version, "<name>.<version>".  This permits several versions of a
package to coexist and is the layout older installations used for every
package."""

import os
import re

from pkgup.client import pkgdefs

class Layout(object):
        """This class is the parent class to all layouts. It defines the
        interface which those subclasses must satisfy."""

        kind = None

        def lookup(self, name, version):
                """Return the directory name for "name" at "version"."""
                raise NotImplementedError

        def path_to_package(self, path):
                """Return a tuple of (name, version string or None) for the
                package this layout would place at "path", or None if this
                layout would never create such a directory."""
                raise NotImplementedError

        def contains(self, path, name, version):
                """Returns whether this layout would place "name" at
                "version" at "path"."""
                return self.lookup(name, version) == os.path.basename(path)


class CanonicalLayout(Layout):
        """This class implements the version-less layout used for the primary
        install of a package."""

        kind = pkgdefs.LAYOUT_CANONICAL

        def lookup(self, name, version):
                """Return the directory name for "name" at "version"."""
                return name

        def path_to_package(self, path):
                """Return the package which would map to "path"."""
                return os.path.basename(path), None


class LegacyLayout(Layout):
        """This class implements the versioned layout, "<name>.<version>"."""

        kind = pkgdefs.LAYOUT_LEGACY

        __dir_re = re.compile(r"\A(?P<name>.+?)\.(?P<version>\d+(\.\d+)*)\Z")

        def lookup(self, name, version):
                """Return the directory name for "name" at "version"."""
                return "{0}.{1}".format(name, version)

        def path_to_package(self, path):
                """Return the package which would map to "path"."""
                m = self.__dir_re.match(os.path.basename(path))
                if not m:
                        return None
                return m.group("name"), m.group("version")


def get_default_layouts():
        """This function describes the order in which directories are
        classified; the versioned pattern is the more specific one."""

        return [LegacyLayout(), CanonicalLayout()]

def get_preferred_layout():
        """This function returns the single preferred layout to use."""

        return CanonicalLayout()
