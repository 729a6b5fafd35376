"""
Auth-token lifecycle.

:mod:`.keys` rotates the signing secret, :mod:`.tokens` issues and
verifies auth tokens under it, and :mod:`.email_tokens` handles proof of
control of e-mail addresses.
"""
