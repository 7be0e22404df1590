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

import os.path

import pkgup.config as cfg
import pkgup.misc as misc
from pkgup.client import pkgdefs

# The default_policies dictionary defines the policies that are supported by
# pkgup and their default values.  Calls to the ImageConfig.get_policy method
# should use the constants defined here.  Each policy supplies the default for
# the upgrade flag of the same name.
NOOP = "noop"
FORCE = "force"
IGNORE_DEPENDENCIES = "ignore-dependencies"
ALLOW_MULTIPLE_VERSIONS = "allow-multiple-versions"
FAIL_ON_NOT_INSTALLED = "fail-on-not-installed"
RUN_HOOKS = "run-hooks"

default_policies = {
    NOOP: False,
    FORCE: False,
    IGNORE_DEPENDENCIES: False,
    ALLOW_MULTIPLE_VERSIONS: False,
    FAIL_ON_NOT_INSTALLED: False,
    RUN_HOOKS: True,
}

# name of the image configuration file, relative to the metadata directory
CFG_FILE = "pkgup.conf"

# Sections named "source_<name>" describe package sources.
SOURCE_PREFIX = "source_"


class ImageConfig(cfg.FileConfig):
        """An ImageConfig object is the collection of configuration
        information (directory names, policies and package sources) that
        allows an upgrade run to operate on an install root."""

        # The default sections and properties of an image configuration.
        __defs = [
            cfg.PropertySection("image", properties=[
                cfg.Property("lib-dir", default=pkgdefs.LIB_DIR),
                cfg.Property("backup-dir", default=pkgdefs.BACKUP_DIR),
                cfg.Property("holding-dir", default=pkgdefs.HOLDING_DIR),
            ]),
            cfg.PropertySection("policy", properties=[
                cfg.PropBool(NOOP, default=default_policies[NOOP]),
                cfg.PropBool(FORCE, default=default_policies[FORCE]),
                cfg.PropBool(IGNORE_DEPENDENCIES,
                    default=default_policies[IGNORE_DEPENDENCIES]),
                cfg.PropBool(ALLOW_MULTIPLE_VERSIONS,
                    default=default_policies[ALLOW_MULTIPLE_VERSIONS]),
                cfg.PropBool(FAIL_ON_NOT_INSTALLED,
                    default=default_policies[FAIL_ON_NOT_INSTALLED]),
                cfg.PropBool(RUN_HOOKS,
                    default=default_policies[RUN_HOOKS]),
            ]),
        ]

        def __init__(self, imgroot, overrides=misc.EmptyDict):
                self.__imgroot = imgroot
                cfgpathname = os.path.join(imgroot, pkgdefs.META_DIR,
                    CFG_FILE)
                cfg.FileConfig.__init__(self, cfgpathname,
                    definitions=self.__defs, overrides=overrides)

        def get_policy(self, policy):
                """Return a boolean value for the named policy.  Returns
                the default value for the policy if the named policy is
                not defined in the image configuration.
                """
                assert policy in default_policies
                return bool(self.get_property("policy", policy))

        def get_dir(self, name):
                """Returns the absolute path of the directory named by the
                'name' property of the image section."""
                return os.path.join(self.__imgroot,
                    self.get_property("image", name))

        def get_flags(self, **overrides):
                """Returns a pkgdefs.UpgradeFlags object built from the policy
                defaults.  Keyword arguments that are not None take precedence
                over the configured policy."""

                values = {}
                for field in pkgdefs.UpgradeFlags._fields:
                        val = overrides.get(field)
                        if val is None:
                                val = self.get_policy(field.replace("_", "-"))
                        values[field] = val
                return pkgdefs.UpgradeFlags(**values)

        def get_sources(self):
                """Returns a list of (name, path) tuples for the package sources
                configured in 'source_<name>' sections, ordered by their 'rank'
                property and then by name.  Relative paths are relative to the
                image root."""

                sources = []
                for sec in self.get_sections():
                        if not sec.name.startswith(SOURCE_PREFIX):
                                continue
                        props = sec.get_index()
                        if str(props.get("disabled", "")).lower() == "true":
                                continue
                        try:
                                rank = cfg.PropInt("rank", minimum=None,
                                    default=props.get("rank")).value
                        except cfg.InvalidPropertyValueError as e:
                                e.section = sec.name
                                raise
                        name = sec.name[len(SOURCE_PREFIX):]
                        path = os.path.join(self.__imgroot,
                            props.get("origin", ""))
                        sources.append((rank, name, path))
                return [(name, path) for rank, name, path in sorted(sources)]
