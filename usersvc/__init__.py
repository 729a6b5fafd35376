"""
User account service.

Creates, reads, updates, deletes and authenticates user accounts, and
manages the auth-token lifecycle: a weekly-rotated signing secret, auth
tokens issued under it, and email-verification tokens.
"""
