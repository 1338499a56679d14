"""Central configuration constants for spatialrf.

Magic numbers shared by the loader, resampling strategies, learners and the
prediction stage live here so that they can be changed in one place.
"""

# Coordinate handling
RESERVED_COORDINATE_NAMES = ("x", "y")  # Names used for coordinate features, never allowed as attributes

# Resampling
DEFAULT_HOLDOUT_RATIO = 2 / 3  # Share of observations used for training in holdout
DEFAULT_CV_FOLDS = 3  # Folds for plain cross-validation
DEFAULT_SPATIAL_FOLDS = 5  # Folds for spatial block / kNNDM cross-validation
KNNDM_SAMPLE_SIZE = 1000  # Prediction points sampled inside the model domain
KNNDM_MAX_CLUSTERS_RATIO = 0.5  # Largest candidate cluster count as a share of n
KNNDM_MAX_CANDIDATES = 25  # Upper bound on evaluated cluster counts
KNNDM_MAX_SAMPLING_ROUNDS = 50  # Rejection sampling rounds before giving up on a domain

# Raster processing
DEFAULT_BLOCK_SIZE = 256  # Block size for surface prediction (pixels)
NODATA_VALUE = -9999.0  # NoData value written to prediction surfaces

# Tuning
DEFAULT_TUNING_RESOLUTION = 5  # Grid points generated for a numeric tuning range
DEFAULT_MEASURE = "regr.rmse"

# Learners
DEFAULT_LEARNER = "regr.ranger"
RANDOM_STATE = 42  # Fixed random state for reproducibility

# Files
MODEL_FILE_EXTENSION = ".pkl"
ARCHIVE_FILE_EXTENSION = ".csv"
