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
sacctmgr commands
"""
import logging
from collections import namedtuple
from enum import Enum

from vsc.accountpage.wrappers import mkNamedTupleInstance
from vsc.utils.missing import namedtuple_with_defaults
from vsc.utils.run import asyncloop

SLURM_SACCT_MGR = "/usr/bin/sacctmgr"


class SacctMgrException(Exception):
    pass


class Attribute(Enum):
    """The association limits that are managed through the policy file."""
    fairshare = "fairshare"
    GrpTRES = "GrpTRES"
    GrpTRESMins = "GrpTRESMins"
    MaxTRES = "MaxTRES"
    MaxTRESPerNode = "MaxTRESPerNode"
    MaxTRESMins = "MaxTRESMins"
    GrpTRESRunMins = "GrpTRESRunMins"
    QOS = "QOS"
    DefQOS = "DefQOS"

    @classmethod
    def lookup(cls, name):
        """Find the attribute, ignoring case. Returns None for unknown names."""
        return ATTRIBUTES_BY_LOWER_NAME.get(name.strip().lower())

    @property
    def column(self):
        """Name of the field in the association listing"""
        return ATTRIBUTE_COLUMNS.get(self, self.value)

    def normalise(self, value):
        """QOS names are compared in upper case, TRES specifications and shares in lower case."""
        value = value.strip()
        if self in QOS_ATTRIBUTES:
            return value.upper()
        return value.lower()


ATTRIBUTES_BY_LOWER_NAME = dict([(a.value.lower(), a) for a in Attribute])
ATTRIBUTE_COLUMNS = {
    Attribute.fairshare: "Share",
    Attribute.DefQOS: "Def_QOS",
}
QOS_ATTRIBUTES = (Attribute.QOS, Attribute.DefQOS)


class CurrentAttributes(dict):
    """Attribute values as they are recorded in the Slurm accounting database."""
    pass


# Fixed column order of the association listing, see SLURM_ASSOC_FORMAT
SacctAssocFields = [
    "Cluster", "Account", "User", "Partition", "Share",
    "GrpJobs", "GrpTRES", "GrpSubmit", "GrpWall", "GrpTRESMins",
    "MaxJobs", "MaxTRES", "MaxTRESPerNode", "MaxSubmit", "MaxWall", "MaxTRESMins",
    "QOS", "Def_QOS", "GrpTRESRunMins",
]

SLURM_ASSOC_FORMAT = [
    "cluster", "account", "user", "partition", "fairshare",
    "grpjobs", "grptres", "grpsubmit", "grpwall", "grptresmins",
    "maxjobs", "maxtres", "maxtrespernode", "maxsubmit", "maxwall", "maxtresmins",
    "qos", "defaultqos", "grptresrunmins",
]

IGNORE_ACCOUNTS = ["root"]

SlurmAssociation = namedtuple_with_defaults(
    'SlurmAssociation', ["Cluster", "Account", "User", "Partition", "Attributes"]
)


class SchedulerState(namedtuple('SchedulerState', ['accounts', 'users'])):
    """Snapshot of the Slurm associations.

    accounts: dict mapping the account name on its SlurmAssociation (no user)
    users: dict mapping the user name on a list with the user's SlurmAssociations
    """

    def association(self, user, account=None):
        """Get the association to compare a user's settings with.

        The association in the given account is preferred, the one without a partition first.
        If the user has no association in that account, the first recorded one is returned.
        """
        associations = self.users.get(user)
        if not associations:
            return None

        in_account = [a for a in associations if a.Account == account]
        if in_account:
            return sorted(in_account, key=lambda a: bool(a.Partition))[0]

        return associations[0]

    def accounts_for(self, user):
        return set([a.Account for a in self.users.get(user, [])])


def mkSlurmAssociation(fields):
    """Make a named tuple from the given fields, keeping only the managed attributes."""
    attributes = CurrentAttributes()
    for attribute in Attribute:
        value = fields.get(attribute.column)
        if value:
            attributes[attribute] = attribute.normalise(value)

    filtered = dict([(k, v) for k, v in fields.items() if k in SlurmAssociation._fields])
    filtered['Attributes'] = attributes

    association = mkNamedTupleInstance(filtered, SlurmAssociation)
    if association.Account in IGNORE_ACCOUNTS:
        return None
    return association


def mksacctmgr(mode):
    """Decorator to prefix common sacctmgr code for mode.

    The decorated function accepts an extra sacctmgr keyword argument with the path to the binary.
    """
    def decorator(function):
        def wrapper(*args, **kwargs):
            sacctmgr = kwargs.pop('sacctmgr', None) or SLURM_SACCT_MGR
            prefix = [sacctmgr, "-i", mode]
            return prefix + function(*args, **kwargs)
        return wrapper
    return decorator


def parse_slurm_assoc_line(line):
    """Parse the line into a SlurmAssociation, by position."""
    fields = line.split("|")
    if len(fields) < len(SacctAssocFields):
        raise SacctMgrException("Expected {0} fields, got {1}".format(len(SacctAssocFields), len(fields)))

    return mkSlurmAssociation(dict(zip(SacctAssocFields, fields)))


def parse_slurm_assoc_dump(lines, group_names):
    """Parse the sacctmgr association listing.

    The first line is the header. Associations without a user are kept only if the account
    has a UNIX group with the same name.

    @param lines: the lines of the listing
    @param group_names: the names of the UNIX groups

    @returns: SchedulerState
    """
    accounts = {}
    users = {}

    for line in lines[1:]:
        logging.debug("line %s", line)
        line = line.rstrip()
        if not line:
            continue
        try:
            association = parse_slurm_assoc_line(line)
        except Exception as err:
            logging.exception("Slurm sacctmgr parse dump: could not process line %s [%s]", line, err)
            raise

        if association is None:
            continue

        if association.User:
            users.setdefault(association.User, []).append(association)
        elif association.Account in group_names:
            accounts[association.Account] = association
        else:
            logging.debug("Ignoring account %s, there is no such group", association.Account)

    return SchedulerState(accounts=accounts, users=users)


class SacctMgrStateSource(object):
    """Provides the association listing of the Slurm accounting database."""

    def __init__(self, sacctmgr=SLURM_SACCT_MGR):
        self.sacctmgr = sacctmgr

    def association_lines(self):
        (exitcode, contents) = asyncloop([
            self.sacctmgr,
            "-P",
            "list",
            "associations",
            "format={0}".format(",".join(SLURM_ASSOC_FORMAT)),
        ])
        if exitcode != 0:
            raise SacctMgrException("Cannot run sacctmgr")

        return contents.splitlines()


def get_slurm_assoc_info(source, group_names):
    """Get the current associations from the given source.

    @param source: SacctMgrStateSource (or anything with an association_lines method)
    @param group_names: the names of the UNIX groups

    @returns: SchedulerState
    """
    state = parse_slurm_assoc_dump(source.association_lines(), group_names)

    logging.debug("%d accounts found", len(state.accounts))
    logging.debug("%d users found", len(state.users))

    return state


def _settings_arguments(settings):
    """key=value arguments for the given attribute settings, in Attribute order"""
    if not settings:
        return []
    return ["{0}={1}".format(attribute.value, settings[attribute]) for attribute in Attribute if attribute in settings]


@mksacctmgr('create')
def create_add_user_command(user, defaultaccount=None, settings=None):
    """
    Creates the command to add the given user.

    @param user: name of the user to add
    @param defaultaccount: name of the account the user will belong to by default
    @param settings: dict mapping Attribute on the value to set

    @returns: list comprising the command
    """
    command = [
        "user",
        "name={0}".format(user),
    ]
    if defaultaccount is not None:
        command.append("defaultaccount={0}".format(defaultaccount))
    command.extend(_settings_arguments(settings))

    logging.debug("Adding command to add user %s with defaultaccount=%s", user, defaultaccount)

    return command


@mksacctmgr('modify')
def create_modify_user_command(user, defaultaccount=None, settings=None):
    """
    Creates the command to change the default account and/or the limits of the given user.

    @returns: list comprising the command
    """
    arguments = _settings_arguments(settings)
    if defaultaccount is not None:
        arguments.insert(0, "defaultaccount={0}".format(defaultaccount))

    if not arguments:
        raise SacctMgrException("Nothing to modify for user {0}".format(user))

    command = [
        "user",
        "where",
        "name={0}".format(user),
        "set",
    ] + arguments

    logging.debug("Adding command to modify user %s: %s", user, arguments)

    return command


@mksacctmgr('delete')
def create_delete_user_command(user):
    """Create the command to remove a user.

    @returns: list comprising the command
    """
    command = [
        "user",
        user,
    ]
    logging.debug("Adding command to remove user %s", user)

    return command
