from .glacierbackup import *
