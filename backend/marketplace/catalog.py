SKILLS = [
    "Mehndi Artist",
    "Home Cleaner",
    "Private Tutor",
    "Beautician",
    "Handyman",
    "Event Planner",
    "Yoga Instructor",
    "Chef",
    "Photographer",
]

CITIES = [
    "Lahore",
    "Islamabad",
    "Karachi",
    "Hyderabad",
    "Sialkot",
]

AVAILABILITY_OPTIONS = [
    "Weekdays",
    "Weekends",
    "Mornings",
    "Afternoons",
    "Evenings",
]

LIVE_LOCATION_RADIUS_KM = 10.0

# Demo listings inserted into an empty store so the directory has something to show.
SEED_PROVIDERS = [
    {
        "user_id": "seed_provider_ayesha",
        "name": "Ayesha's Mehndi Studio",
        "bio": "Bridal and festive mehndi, intricate Arabic and Indo-Pak designs.",
        "skills": ["Mehndi Artist", "Beautician"],
        "location": {"city": "Lahore", "area": "Gulberg", "coordinates": {"latitude": 31.5204, "longitude": 74.3587}},
        "pricing": "Rs. 3000 per hand",
        "availability": "Weekends, Evenings",
        "contact_info": {"phone": "+92 300 1111111", "email": "ayesha@example.com", "whatsapp": "+92 300 1111111"},
        "rating": 4.8,
    },
    {
        "user_id": "seed_provider_bilal",
        "name": "Bilal Home Services",
        "bio": "Deep cleaning for flats and houses, move-in and move-out cleans.",
        "skills": ["Home Cleaner", "Handyman"],
        "location": {"city": "Karachi", "area": "Clifton", "coordinates": {"latitude": 24.8138, "longitude": 67.0300}},
        "pricing": "Rs. 2500 per visit",
        "availability": "Weekdays, Mornings",
        "contact_info": {"phone": "+92 300 2222222", "email": "bilal@example.com", "whatsapp": "+92 300 2222222"},
        "rating": 4.5,
    },
    {
        "user_id": "seed_provider_sana",
        "name": "Sana Learning Circle",
        "bio": "Maths and physics tutoring for O/A levels.",
        "skills": ["Private Tutor"],
        "location": {"city": "Islamabad", "area": "F-7", "coordinates": {"latitude": 33.7215, "longitude": 73.0433}},
        "pricing": "Rs. 1500 per hour",
        "availability": "Afternoons, Evenings",
        "contact_info": {"phone": "+92 300 3333333", "email": "sana@example.com", "whatsapp": ""},
        "rating": 4.9,
    },
]
