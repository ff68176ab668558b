"""Navigator Integrations Meta information.
   Navigator Integrations keeps the credentials of third-party app
   integrations encrypted at rest and guards their inbound webhooks.
"""
__title__ = 'navigator_integrations'
__description__ = (
   'Encrypted storage of app integration secrets and '
   'webhook secret validation.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-integrations'
