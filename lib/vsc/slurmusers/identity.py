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
UNIX users and groups, as seen through the name service switch.
"""
import logging
import os

from vsc.accountpage.wrappers import mkNamedTupleInstance
from vsc.utils.missing import namedtuple_with_defaults
from vsc.utils.run import asyncloop

from vsc.slurmusers import report

GETENT = "/usr/bin/getent"

DEFAULT_MIN_UID = 1002
NOLOGIN_SHELL = "nologin"


class IdentityException(Exception):
    pass


GroupFields = ["name", "gid"]
IdentityFields = ["name", "uid", "gid", "fullname", "homedir", "shell"]

Group = namedtuple_with_defaults('Group', GroupFields)
Identity = namedtuple_with_defaults('Identity', IdentityFields)


class IdentitySource(object):
    """Provides the group and passwd database, one colon separated entry per line."""

    def group_lines(self):
        raise NotImplementedError

    def passwd_lines(self):
        raise NotImplementedError


class GetentIdentitySource(IdentitySource):
    """Query the databases with getent, so LDAP/SSSD users are included."""

    def __init__(self, getent=GETENT):
        self.getent = getent

    def _getent(self, database):
        (exitcode, contents) = asyncloop([self.getent, database])
        if exitcode != 0:
            raise IdentityException("Cannot run getent {0}".format(database))
        return contents.splitlines()

    def group_lines(self):
        return self._getent("group")

    def passwd_lines(self):
        return self._getent("passwd")


def mkGroup(fields):
    """Make a named tuple from the given fields."""
    filtered = dict([(k, v) for k, v in fields.items() if k in GroupFields])
    filtered['name'] = filtered['name'].lower()
    filtered['gid'] = int(filtered['gid'])
    return mkNamedTupleInstance(filtered, Group)


def mkIdentity(fields):
    """Make a named tuple from the given fields."""
    filtered = dict([(k, v) for k, v in fields.items() if k in IdentityFields])
    for key in ['uid', 'gid']:
        filtered[key] = int(filtered[key])
    return mkNamedTupleInstance(filtered, Identity)


def _parse_lines(lines, names, creator, database):
    result = []
    for line in lines:
        line = line.rstrip("\n")
        if not line.strip():
            continue

        fields = line.split(":")
        if len(fields) < len(names):
            logging.error("Malformed %s entry: %s", database, line)
            raise IdentityException("Cannot parse {0} entry {1}".format(database, line))

        try:
            result.append(creator(dict(zip(names, fields))))
        except ValueError as err:
            logging.exception("Could not process %s entry %s [%s]", database, line, err)
            raise IdentityException("Cannot parse {0} entry {1}".format(database, line))

    return result


def parse_group_lines(lines):
    """Parse name:password:gid:members lines into Group tuples."""
    return _parse_lines(lines, ["name", "password", "gid"], mkGroup, "group")


def parse_passwd_lines(lines):
    """Parse name:password:uid:gid:fullname:homedir:shell lines into Identity tuples."""
    names = ["name", "password", "uid", "gid", "fullname", "homedir", "shell"]
    return _parse_lines(lines, names, mkIdentity, "passwd")


def is_eligible(identity, min_uid=DEFAULT_MIN_UID):
    """Check that the user should have an association in Slurm.

    @param identity: Identity tuple
    @param min_uid: lowest uid of a regular user

    @returns: True for users with a uid of at least min_uid, a login shell and an existing home directory
    """
    if identity.uid < min_uid:
        logging.debug("User %s has uid %d < %d", identity.name, identity.uid, min_uid)
        return False

    if os.path.basename(identity.shell) == NOLOGIN_SHELL:
        logging.debug("User %s has shell %s", identity.name, identity.shell)
        return False

    if not os.path.isdir(identity.homedir):
        report.notice("user %s has no home directory %s, skipping", identity.name, identity.homedir)
        return False

    return True


def get_identity_info(source):
    """Get all groups and users from the given IdentitySource.

    @returns: tuple (list of Group, list of Identity)
    """
    groups = parse_group_lines(source.group_lines())
    identities = parse_passwd_lines(source.passwd_lines())

    logging.debug("%d groups found", len(groups))
    logging.debug("%d users found", len(identities))

    return (groups, identities)
