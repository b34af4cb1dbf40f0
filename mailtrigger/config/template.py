"""Default configuration template.

This template is written to ~/.config/mailtrigger/config.toml
when running `mailtrigger config init`.
"""

CONFIG_TEMPLATE = """\
# mailtrigger configuration

# Global check interval in seconds (can be overridden per mailbox)
check-interval-seconds = 30

[imap]
server = "imap.example.com"
port = 993
username = "you@example.com"
# Prefer the MAILTRIGGER_IMAP_PASSWORD environment variable.
# password = "app-password"
use-ssl = true
retry-interval-seconds = 30

# Each [[monitor]] section watches one mailbox.
[[monitor]]
mailbox = "INBOX"
# check-interval-seconds = 60

# A trigger matches when every pattern it sets matches.
# Patterns are case-insensitive unless ignore-case = false.
[[monitor.triggers]]
regex-pattern = 'activate switch (\\d+)'
# from = "alerts@example\\\\.com"
# to = "ops"
# subject = "^switch"
# final = true
command = "logger \\"switch request from $EMAIL_FROM: $EMAIL_SUBJECT\\""

# Commands run under /bin/sh with these environment variables:
#   EMAIL_FROM     sender address
#   EMAIL_SUBJECT  subject line
#   EMAIL_DATE     date in RFC 3339 format
#   EMAIL_UID      message UID
# The message text body is passed on stdin.
"""
