"""
visual_recognizer — Teach-and-recognize object classification from camera frames.

Learns labeled objects from single captured frames and recognizes them
in later frames using local signal processing only: a motion gate,
color-histogram and edge-orientation fingerprints, and weighted
histogram-intersection matching.

Modules:
    engine             ClassificationPipeline (session, learn, tick)
    scheduler          Background tick runner
    motion             Frame-to-frame MotionGate
    histograms         Joint RGB color histogram
    shape_descriptors  Edge-orientation (Sobel) histogram
    features           Feature-kind registry and bundle extraction
    feature_store      Learned items
    scoring            Weighted similarity and classification
    preprocessing      Frame decoding and thumbnails
"""

__version__ = "1.0.0"
