from .spec import SpecExportOptions

N_BATCH_SIZE_DEFAULT = 1000

C_ISSUE_SOURCE = "Error while reading records"

DEFAULT_EXPORT_OPTIONS = SpecExportOptions(batch_size=N_BATCH_SIZE_DEFAULT)
