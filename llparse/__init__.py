from .parser import *
