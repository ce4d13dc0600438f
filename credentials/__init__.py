"""
credentials — persistence for OAuth credential records.

Provides:
  • ``CredentialStore`` protocol (load / create / update)
  • ``SqlCredentialStore`` backed by the ``credentials`` table
  • Fernet encryption of the record payload at rest
"""
