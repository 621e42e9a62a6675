"""
Repository package for data access layers.

You can provide a custom upload record store by setting the environment
variable `UPLOAD_RECORD_STORE_IMPL` to a path like:

    myapp.data.uploads:PostgresUploadRecordStore

and ensuring that class implements the interface used by app.repositories.uploads.
"""
