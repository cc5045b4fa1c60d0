from logging import *


VERBOSE = DEBUG + 5
addLevelName(VERBOSE, 'VERBOSE')


def logForLevel(self, message, *args, **kwargs):
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


def logToRoot(message, *args, **kwargs):
    log(VERBOSE, message, *args, **kwargs)


setattr(getLoggerClass(), 'verbose', logForLevel)
verbose = logToRoot
