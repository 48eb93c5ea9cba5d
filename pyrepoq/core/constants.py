"""Keys shared between the query pipeline and its callers."""

# Key of the download location in PackageRevision.data.
PACKAGE_LOCATION = "LOCATION"

SUCCESS_RETURN_CODE = 0
