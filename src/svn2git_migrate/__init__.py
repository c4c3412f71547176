"""svn2git-migrate

Moves Subversion projects into GitLab: creates the destination project, imports
the Subversion history through git-svn, strips unwanted files from every commit
and pushes the result, recording each step of every job.
"""

__version__ = '0.1.0'
