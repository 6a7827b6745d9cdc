"""
Tracking Configuration Parameters
Defaults for silhouette extraction, background estimation and batch runs
"""

# Per-frame tracking parameters
TRACKING_PARAMETERS = {
    # Channel handling
    'channel': 'R',              # R, G, B or Grey (ignored for single-channel sources)
    'video_mode': 'RGB',         # RGB, Thermal or GreyScale
    'mouse_intensity': 'Low',    # Low: dark animal on light floor, High: bright on dark

    # Segmentation
    'threshold': 80,             # 0-255, applied after polarity normalization
    'reflection_penalty': 1.0,   # 1-10, divisor outside the region of interest

    # Contour post-processing
    'smooth_contour_enable': True,
    'smooth_contour_window': 10,     # vertices
    'smooth_contour_method': 'gaussian',  # gaussian or moving
}

# Morphological cleanup, applied in this exact order
MORPHOLOGY_STAGES = [
    {'name': 'MC1', 'operation': 'close', 'enabled': True, 'size': 5},
    {'name': 'FilterSize', 'operation': 'size_filter', 'enabled': True, 'size': 10},  # min area (px)
    {'name': 'MC2', 'operation': 'close', 'enabled': True, 'size': 7},
    {'name': 'MO1', 'operation': 'open', 'enabled': True, 'size': 7},
]

# Background estimation
BACKGROUND_PARAMETERS = {
    'enable': False,
    'mode': 'Median',            # Median, Mean, Min, Max or Percentile
    'percentile': 50.0,          # only used by Percentile
    'frames_num': 50,            # frames sampled by the automatic picker
    'subtract_main': False,      # display only
    'sampling_workers': 4,       # parallel frame reads
}

# Fixed pipeline constants
PIPELINE_CONSTANTS = {
    'min_blob_area': 10,             # px floor applied around the pre-filter opening
    'pre_open_radius': 2,            # disk radius of the pre-filter opening
    'blob_connectivity': 8,
    'frame_estimate_margin': 1.1,    # decoders under-report frame counts
    'stack_frame_rate': 30.0,        # fps assumed for .npy frame stacks
    'thermal_marker': '_IR',
    'log_suffix': '_Tracking.json',
    'timestamps_suffix': '.DVT',
}

# Batch processing
BATCH_PROCESSING = {
    'max_workers': None,     # None: one per CPU
    'use_processes': True,   # False: threads (allows cooperative cancellation)
}

LOGGING_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
