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

import weakref
from functools import total_ordering


class VersionError(Exception):
        """Base exception class for all version errors."""

        def __init__(self, *args):
                Exception.__init__(self, *args)


class IllegalDotSequence(VersionError):
        """Used to indicate that the specified DotSequence is not valid."""


class IllegalVersion(VersionError):
        """Used to indicate that the specified version string is not valid."""


class IllegalConstraint(VersionError):
        """Used to indicate that the specified version constraint string is
        not valid."""


class DotSequence(list):
        """A DotSequence is the typical "x.y.z" string used in software
        versioning.  We define the "major release" value and the "minor release"
        value as the first two numbers in the sequence."""

        #
        # We employ the Flyweight design pattern for dotsequences, since they
        # are used immutably and are highly repetitive across the versions
        # published by a source.
        #
        __dotseq_pool = weakref.WeakValueDictionary()

        @staticmethod
        def dotsequence_val(elem):
                # Do this first; if the string is zero chars or non-numeric
                # chars, this will throw.
                x = int(elem)
                if elem[0] == "-":
                        raise ValueError("Negative number")
                if x > 0 and elem[0] == "0":
                        raise ValueError("Zero padded number")
                return x

        def __new__(cls, dotstring):
                ds = DotSequence.__dotseq_pool.get(dotstring)
                if ds is None:
                        cls.__dotseq_pool[dotstring] = ds = \
                            list.__new__(cls)
                return ds

        def __init__(self, dotstring):
                # Was I already initialized?  See __new__ above.
                if len(self) != 0:
                        return

                try:
                        list.__init__(self,
                            list(map(DotSequence.dotsequence_val,
                                dotstring.split("."))))
                except ValueError:
                        raise IllegalDotSequence(dotstring)

                if len(self) == 0:
                        raise IllegalDotSequence("Empty DotSequence")

        def __str__(self):
                return ".".join(map(str, self))

        def __hash__(self):
                return hash(tuple(self))

        def is_same_major(self, other):
                """ Test if DotSequences have the same major number """
                return self[0] == other[0]


@total_ordering
class Version(object):
        """A package version.  Trailing zero components are not significant,
        so "1.0" and "1.0.0" compare and hash as equal, but the string form
        given by the publisher is preserved."""

        def __init__(self, version_string):
                if isinstance(version_string, Version):
                        version_string = str(version_string)
                if not version_string or not isinstance(version_string, str):
                        raise IllegalVersion(version_string)
                try:
                        self.release = DotSequence(version_string.strip())
                except IllegalDotSequence:
                        raise IllegalVersion(version_string)

                key = list(self.release)
                while len(key) > 1 and key[-1] == 0:
                        key.pop()
                self.__key = tuple(key)

        def __str__(self):
                return str(self.release)

        def __repr__(self):
                return "<Version {0}>".format(self)

        def __hash__(self):
                return hash(self.__key)

        def __eq__(self, other):
                if not isinstance(other, Version):
                        return False
                return self.__key == other.__key

        def __ne__(self, other):
                return not self == other

        def __lt__(self, other):
                if not isinstance(other, Version):
                        return NotImplemented
                return self.__key < other.__key


class Constraint(object):
        """A constraint that allows any version.  Subclasses narrow the set of
        allowed versions."""

        exact = None

        def allows(self, version):
                """Returns a boolean indicating whether 'version' satisfies the
                constraint."""
                return True

        def __str__(self):
                return "*"

        def __repr__(self):
                return "<{0} {1}>".format(type(self).__name__, self)

        def __eq__(self, other):
                return type(self) is type(other) and str(self) == str(other)

        def __ne__(self, other):
                return not self == other

        def __hash__(self):
                return hash((type(self).__name__, str(self)))


class ExactConstraint(Constraint):
        """A constraint that only allows a single version."""

        def __init__(self, version):
                self.exact = Version(version)

        def allows(self, version):
                return version == self.exact

        def __str__(self):
                return "[{0}]".format(self.exact)


class RangeConstraint(Constraint):
        """A constraint bounded by an optional minimum and an optional maximum.
        The minimum is inclusive and the maximum is exclusive unless told
        otherwise."""

        def __init__(self, minimum=None, maximum=None, min_inclusive=True,
            max_inclusive=False):
                self.minimum = minimum is not None and Version(minimum) or None
                self.maximum = maximum is not None and Version(maximum) or None
                self.min_inclusive = min_inclusive
                self.max_inclusive = max_inclusive

        def allows(self, version):
                if self.minimum is not None:
                        if version < self.minimum:
                                return False
                        if version == self.minimum and not self.min_inclusive:
                                return False
                if self.maximum is not None:
                        if version > self.maximum:
                                return False
                        if version == self.maximum and not self.max_inclusive:
                                return False
                return True

        def __str__(self):
                return "{0}{1},{2}{3}".format(
                    self.min_inclusive and "[" or "(",
                    self.minimum is not None and self.minimum or "",
                    self.maximum is not None and self.maximum or "",
                    self.max_inclusive and "]" or ")")


def __parse_interval(text):
        """Parses interval notation such as "[1.0,2.0)" or "[1.0]"."""

        lo, hi = text[0], text[-1]
        if lo not in "[(" or hi not in "])":
                raise IllegalConstraint(text)
        body = text[1:-1].strip()
        if "," not in body:
                if lo != "[" or hi != "]" or not body:
                        raise IllegalConstraint(text)
                return ExactConstraint(body)

        minimum, maximum = [s.strip() or None for s in body.split(",", 1)]
        if minimum is None and maximum is None:
                raise IllegalConstraint(text)
        return RangeConstraint(minimum=minimum, maximum=maximum,
            min_inclusive=(lo == "["), max_inclusive=(hi == "]"))

def __parse_comparisons(text):
        """Parses comma-separated comparisons such as ">=1.0,<2.0"."""

        bounds = {}
        for term in text.split(","):
                term = term.strip()
                for op in ("==", ">=", "<=", ">", "<", "="):
                        if term.startswith(op):
                                break
                else:
                        raise IllegalConstraint(text)

                ver = term[len(op):].strip()
                if op in ("==", "="):
                        if len(text.split(",")) != 1:
                                raise IllegalConstraint(text)
                        return ExactConstraint(ver)
                side = op[0] == ">" and "min" or "max"
                if side in bounds:
                        raise IllegalConstraint(text)
                bounds[side] = (ver, op.endswith("="))

        minimum, min_inclusive = bounds.get("min", (None, True))
        maximum, max_inclusive = bounds.get("max", (None, False))
        return RangeConstraint(minimum=minimum, maximum=maximum,
            min_inclusive=min_inclusive, max_inclusive=max_inclusive)

def parse_constraint(text, bare_exact=False):
        """Returns a Constraint object for the given constraint string.

        Accepted forms are "" or "*" (any version), interval notation
        ("[1.0]", "[1.0,2.0)", "(,2.0]"), comparisons (">=1.0",
        ">=1.0,<2.0", "==1.0") and a bare version.  A bare version is a
        minimum-inclusive range unless 'bare_exact' is True, in which case
        it only matches itself.

        Raises IllegalConstraint (or IllegalVersion) on malformed input."""

        if text is None:
                return Constraint()
        text = text.strip()
        if text in ("", "*"):
                return Constraint()
        try:
                if text[0] in "[(":
                        return __parse_interval(text)
                if text[0] in "<>=":
                        return __parse_comparisons(text)
        except IllegalVersion:
                raise IllegalConstraint(text)
        if bare_exact:
                return ExactConstraint(text)
        return RangeConstraint(minimum=text)
