#
# Copyright 2023 Ghent University
#
# This file is part of vsc-slurm-users,
# originally created by the HPC team of Ghent University (http://ugent.be/hpc/en),
# with support of Ghent University (http://ugent.be/hpc),
# the Flemish Supercomputer Centre (VSC) (https://www.vscentrum.be),
# the Flemish Research Foundation (FWO) (http://www.fwo.be/en)
# and the Department of Economy, Science and Innovation (EWI) (http://www.ewi-vlaanderen.be/en).
#
# All rights reserved.
#
"""
Association limit policy.

The policy file has one setting per line, scope:attribute:value, e.g.

    DEFAULT:fairshare:2
    DEFAULT:GrpTRES:cpu=1500
    laba:GrpTRESMins:cpu=600000
    alice:QOS:normal,long

The scope is DEFAULT, a UNIX group name or a user name. Any line with a # in it is ignored.
"""
import logging
import os

from vsc.utils.missing import namedtuple_with_defaults

from vsc.slurmusers import report
from vsc.slurmusers.sacctmgr import Attribute

DEFAULT_POLICY_FILE = "/etc/sync_slurm_users.conf"
DEFAULT_SCOPE = "DEFAULT"
DEFAULT_FAIRSHARE = "2"
COMMENT_MARKER = "#"

# defaults: dict Attribute -> value
# groups, users: dict name -> dict Attribute -> value
Policy = namedtuple_with_defaults('Policy', ['defaults', 'groups', 'users'])


def default_settings(fairshare=DEFAULT_FAIRSHARE, grptres=None, grptresrunmins=None):
    """The configured defaults. Empty values are not set.

    @param fairshare: the default share, or "parent" to let Slurm use the account's share
    """
    settings = {}
    for (attribute, value) in [
        (Attribute.fairshare, fairshare),
        (Attribute.GrpTRES, grptres),
        (Attribute.GrpTRESRunMins, grptresrunmins),
    ]:
        if value:
            settings[attribute] = attribute.normalise(str(value))

    return settings


def parse_policy_lines(lines, group_names, user_names, defaults=None):
    """Parse the policy settings.

    @param lines: the policy file lines
    @param group_names: the names of the UNIX groups, settings for these are group settings
    @param user_names: the known user names, others are reported but kept as user settings
    @param defaults: initial defaults, overridden by DEFAULT lines

    @returns: Policy
    """
    policy_defaults = dict(defaults or {})
    groups = {}
    users = {}

    for line in lines:
        if COMMENT_MARKER in line:
            continue

        fields = [f.strip() for f in line.strip().split(":")]
        if len(fields) != 3:
            logging.debug("Skipping policy line %s", line.rstrip())
            continue

        (scope, name, value) = fields

        attribute = Attribute.lookup(name)
        if attribute is None:
            report.warning("unknown attribute %s for %s in the policy, ignoring it", name, scope)
            continue

        if not value:
            report.warning("no value for %s for %s in the policy, ignoring it", attribute.value, scope)
            continue

        value = attribute.normalise(value)

        if scope == DEFAULT_SCOPE:
            policy_defaults[attribute] = value
        elif scope in group_names:
            groups.setdefault(scope, {})[attribute] = value
        else:
            if scope not in user_names:
                report.notice("policy scope %s is not a known group or user, keeping it as a user setting", scope)
            users.setdefault(scope, {})[attribute] = value

    logging.debug("Policy defaults: %s", policy_defaults)
    logging.debug("Policy for %d groups and %d users", len(groups), len(users))

    return Policy(defaults=policy_defaults, groups=groups, users=users)


def read_policy(path, group_names, user_names, defaults=None):
    """Read the policy file. A missing file leaves only the defaults."""
    if not os.path.isfile(path):
        report.warning("policy file %s not found, using the defaults only", path)
        lines = []
    else:
        with open(path) as fh:
            lines = fh.readlines()

    return parse_policy_lines(lines, group_names, user_names, defaults=defaults)
