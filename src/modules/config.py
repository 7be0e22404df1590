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

"""Flat, single-level configuration data: sections of named properties.

A Config holds PropertySection objects, each of which holds Property
objects.  The set of sections and properties known in advance, along with
their default values, is given by a list of section templates; sections and
properties not named there are created as plain string properties when they
are first set.  FileConfig stores the data in an INI-style file."""

import configparser
import copy
import errno
import os
import re
import stat
import tempfile
from collections import OrderedDict

from pkgup import misc
import pkgup.client.api_errors as api_errors


class ConfigError(api_errors.ApiException):
        """Base exception class for configuration errors."""


class PropertyConfigError(ConfigError):
        """Base exception class for errors concerning a single section or
        property."""

        def __init__(self, section=None, prop=None):
                api_errors.ApiException.__init__(self)
                assert section is not None or prop is not None
                self.section = section
                self.prop = prop


class InvalidPropertyNameError(PropertyConfigError):

        def __init__(self, prop):
                PropertyConfigError.__init__(self, prop=prop)

        def __str__(self):
                return _("'{0}' is not a valid property name.  Names may not "
                    "be empty or contain whitespace control characters, "
                    "slashes or non-ASCII characters.").format(self.prop)


class InvalidPropertyValueError(PropertyConfigError):

        def __init__(self, section=None, prop=None, value=None,
            minimum=None, maximum=None):
                PropertyConfigError.__init__(self, section=section, prop=prop)
                self.value = value
                self.minimum = minimum
                self.maximum = maximum

        def __str__(self):
                where = self.prop
                if self.section:
                        where = "{0}.{1}".format(self.section, self.prop)
                if self.minimum is not None:
                        return _("{where}: '{value}' is below the minimum of "
                            "{minimum}.").format(where=where,
                            value=self.value, minimum=self.minimum)
                if self.maximum is not None:
                        return _("{where}: '{value}' is above the maximum of "
                            "{maximum}.").format(where=where,
                            value=self.value, maximum=self.maximum)
                return _("{where}: invalid value '{value}'.").format(
                    where=where, value=self.value)


class InvalidSectionNameError(PropertyConfigError):

        def __init__(self, section):
                PropertyConfigError.__init__(self, section=section)

        def __str__(self):
                return _("'{0}' is not a valid section name.  Names may not "
                    "be empty or contain whitespace control characters, "
                    "slashes or non-ASCII characters.").format(self.section)


class UnknownPropertyError(PropertyConfigError):

        def __str__(self):
                if self.section:
                        return _("Unknown property '{0}' in section "
                            "'{1}'.").format(self.prop, self.section)
                return _("Unknown property '{0}'.").format(self.prop)


class UnknownSectionError(PropertyConfigError):

        def __str__(self):
                return _("Unknown section '{0}'.").format(self.section)


_name_re = re.compile(r"\A[^\t\n\r\f\v\\/]+\Z")

def _valid_name(name):
        return isinstance(name, str) and bool(_name_re.match(name)) and \
            name.isascii()


class Property(object):
        """A property with a string value."""

        def __init__(self, name, default=""):
                if not _valid_name(name):
                        raise InvalidPropertyNameError(name)
                self.__name = name
                self._value = None
                self.value = default

        def __eq__(self, other):
                return isinstance(other, Property) and \
                    (self.name, self.value) == (other.name, other.value)

        def __ne__(self, other):
                return not self == other

        def __hash__(self):
                return hash((self.name, self.value))

        def __copy__(self):
                return self.__class__(self.name, default=self.value)

        def __str__(self):
                return str(self.value)

        def _convert(self, value):
                """Returns 'value' in the form stored by this property, or
                raises InvalidPropertyValueError."""

                if value is None:
                        return ""
                if isinstance(value, (bool, int)):
                        return str(value)
                if not isinstance(value, str):
                        raise InvalidPropertyValueError(prop=self.name,
                            value=value)
                return value

        @property
        def name(self):
                return self.__name

        @property
        def value(self):
                return self._value

        @value.setter
        def value(self, value):
                self._value = self._convert(value)


class PropBool(Property):
        """A property with a boolean value; strings are accepted in any case
        as 'true' or 'false'."""

        def __init__(self, name, default=False):
                Property.__init__(self, name, default=default)

        def _convert(self, value):
                if value is None or value == "":
                        return False
                if isinstance(value, bool):
                        return value
                if isinstance(value, str) and \
                    value.lower() in ("true", "false"):
                        return value.lower() == "true"
                raise InvalidPropertyValueError(prop=self.name, value=value)


class PropInt(Property):
        """A property with an integer value, optionally bounded."""

        def __init__(self, name, default=0, minimum=0, maximum=None):
                self.minimum = minimum
                self.maximum = maximum
                Property.__init__(self, name, default=default)

        def __copy__(self):
                return self.__class__(self.name, default=self.value,
                    minimum=self.minimum, maximum=self.maximum)

        def _convert(self, value):
                if value is None or value == "":
                        value = 0
                try:
                        nvalue = int(value)
                except (TypeError, ValueError):
                        raise InvalidPropertyValueError(prop=self.name,
                            value=value)
                if self.minimum is not None and nvalue < self.minimum:
                        raise InvalidPropertyValueError(prop=self.name,
                            value=value, minimum=self.minimum)
                if self.maximum is not None and nvalue > self.maximum:
                        raise InvalidPropertyValueError(prop=self.name,
                            value=value, maximum=self.maximum)
                return nvalue


class PropertySection(object):
        """A named, ordered collection of properties."""

        def __init__(self, name, properties=misc.EmptyI):
                if not _valid_name(name):
                        raise InvalidSectionNameError(name)
                self.__name = name
                self.__properties = OrderedDict((p.name, p) for p in properties)

        def __copy__(self):
                return self.__class__(self.__name,
                    [copy.copy(p) for p in self.__properties.values()])

        def __str__(self):
                return self.name

        @property
        def name(self):
                return self.__name

        def add_property(self, prop):
                assert prop.name not in self.__properties
                self.__properties[prop.name] = prop
                return prop

        def get_property(self, name):
                """Returns the named Property object; raises
                UnknownPropertyError if the section has no such property."""

                try:
                        return self.__properties[name]
                except KeyError:
                        raise UnknownPropertyError(section=self.__name,
                            prop=name)

        def get_properties(self):
                return list(self.__properties.values())

        def get_index(self):
                """Returns a dictionary of property values indexed by property
                name."""
                return dict((p.name, p.value) for p in self.get_properties())


class Config(object):
        """In-memory configuration data.

        'definitions' is a list of PropertySection objects that serve as
        templates for the initial sections, properties and default values.

        'overrides' is a dictionary of property values indexed by section name
        and then property name; the values take precedence over both the
        defaults and anything loaded later."""

        _target = None

        def __init__(self, definitions=misc.EmptyI, overrides=misc.EmptyDict):
                self._defs = list(definitions)
                self._dirty = False
                self.__sections = OrderedDict()
                self.reset(overrides=overrides)

        def __str__(self):
                out = []
                for sec in self.get_sections():
                        out.append("[{0}]".format(sec.name))
                        out.extend("{0} = {1}".format(p.name, p)
                            for p in sec.get_properties())
                        out.append("")
                return "\n".join(out)

        def _get_matching_property(self, section, name):
                """Returns the named Property object of 'section', creating
                the section from its template, or the property as a plain
                string property, as needed."""

                try:
                        secobj = self.get_section(section)
                except UnknownSectionError:
                        secobj = PropertySection(section)
                        for s in self._defs:
                                if s.name == section:
                                        secobj = copy.copy(s)
                                        break
                        self.add_section(secobj)

                try:
                        return secobj.get_property(name)
                except UnknownPropertyError:
                        return secobj.add_property(Property(name))

        def _apply(self, section, name, value):
                propobj = self._get_matching_property(section, name)
                try:
                        propobj.value = value
                except PropertyConfigError as e:
                        if not e.section:
                                e.section = section
                        raise

        def add_section(self, section):
                assert section.name not in self.__sections
                self.__sections[section.name] = section

        def get_section(self, name):
                try:
                        return self.__sections[name]
                except KeyError:
                        raise UnknownSectionError(section=name)

        def get_sections(self):
                return list(self.__sections.values())

        def get_property(self, section, name):
                """Returns the value of the named property.  Raises
                UnknownPropertyError if the section or the property does not
                exist."""

                try:
                        sec = self.get_section(section)
                except UnknownSectionError:
                        raise UnknownPropertyError(section=section, prop=name)
                return sec.get_property(name).value

        def set_property(self, section, name, value):
                """Sets the named property, adding the section or the property
                if they do not exist yet."""

                self._apply(section, name, value)
                self._dirty = True

        def get_index(self):
                """Returns a dictionary of dictionaries of property values
                indexed by section name and then property name."""
                return dict((s.name, s.get_index())
                    for s in self.get_sections())

        def reset(self, overrides=misc.EmptyDict):
                """Discards the current data, restores the defaults, and then
                applies 'overrides'."""

                self.__sections = OrderedDict()
                for s in self._defs:
                        self.add_section(copy.copy(s))
                for sname, props in overrides.items():
                        for pname, val in props.items():
                                self._apply(sname, pname, val)
                self._dirty = bool(overrides)

        @property
        def target(self):
                """The pathname the data is stored at, or None."""
                return self._target

        def write(self):
                pass


class FileConfig(Config):
        """Configuration data stored in a file read and written with
        configparser:

        [image]
        lib-dir = lib

        [policy]
        fail-on-not-installed = True

        A missing file yields the defaults; the file is created by write().
        Property names keep their case."""

        def __init__(self, pathname, definitions=misc.EmptyI,
            overrides=misc.EmptyDict):
                self._target = pathname
                Config.__init__(self, definitions=definitions,
                    overrides=overrides)

        @staticmethod
        def __parser():
                cp = configparser.RawConfigParser()
                cp.optionxform = str
                return cp

        def reset(self, overrides=misc.EmptyDict):
                """Restores the defaults, loads the file over them, and then
                applies 'overrides'."""

                cp = self.__parser()
                try:
                        with open(self._target, "r", encoding="utf-8") as f:
                                cp.read_file(f)
                except EnvironmentError as e:
                        if e.errno != errno.ENOENT:
                                raise api_errors._convert_error(e)
                except configparser.Error:
                        raise api_errors.InvalidConfigFile(self._target)

                Config.reset(self)
                for section in cp.sections():
                        for prop, value in cp.items(section):
                                if prop in overrides.get(section, ()):
                                        continue
                                self._apply(section, prop, value)
                for sname, props in overrides.items():
                        for pname, val in props.items():
                                self._apply(sname, pname, val)
                self._dirty = False

        def write(self):
                """Writes the data to the target pathname, replacing the file
                atomically and keeping its mode.  Nothing is written if the
                file exists and nothing has changed."""

                if os.path.exists(self._target) and not self._dirty:
                        return

                cp = self.__parser()
                for sec in self.get_sections():
                        cp.add_section(sec.name)
                        for p in sec.get_properties():
                                cp.set(sec.name, p.name, str(p))

                dirname = os.path.dirname(self._target)
                fn = None
                try:
                        misc.makedirs(dirname)
                        fd, fn = tempfile.mkstemp(dir=dirname)
                        try:
                                mode = stat.S_IMODE(os.stat(
                                    self._target).st_mode)
                        except OSError as e:
                                if e.errno != errno.ENOENT:
                                        raise
                                mode = misc.PKG_FILE_MODE
                        os.fchmod(fd, mode)
                        with open(fd, "w", encoding="utf-8") as f:
                                cp.write(f)
                        os.rename(fn, self._target)
                        fn = None
                        self._dirty = False
                except EnvironmentError as e:
                        raise api_errors._convert_error(e)
                finally:
                        if fn and os.path.exists(fn):
                                os.unlink(fn)
