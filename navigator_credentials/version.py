"""Navigator Credentials Meta information.
   Navigator Credentials expands one master key into any number of
   encrypted secrets stored as files.
"""
__title__ = 'navigator_credentials'
__description__ = (
   'Navigator Credentials expands one master key into any number '
   'of encrypted secret files.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-credentials'
