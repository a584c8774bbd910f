DEMO_PASSWORD = "mecalink-demo"

SEED_ACCOUNTS = [
    {
        "id": "acct_client_demo",
        "name": "Demo Client",
        "email": "client@mecalink.test",
        "phone": "06 10 20 30 40",
        "role": "client",
    },
    {
        "id": "acct_garage_1",
        "name": "Garage du Centre",
        "email": "centre@mecalink.test",
        "phone": "01 42 00 11 22",
        "role": "provider",
    },
    {
        "id": "acct_garage_2",
        "name": "Bastille Dépannage",
        "email": "bastille@mecalink.test",
        "phone": "01 43 55 66 77",
        "role": "provider",
    },
    {
        "id": "acct_garage_3",
        "name": "Montparnasse Auto",
        "email": "montparnasse@mecalink.test",
        "phone": "01 45 38 90 12",
        "role": "provider",
    },
    {
        "id": "acct_garage_4",
        "name": "Nanterre Remorquage",
        "email": "nanterre@mecalink.test",
        "phone": "01 47 21 43 65",
        "role": "provider",
    },
]

SEED_GARAGES = [
    {
        "id": "gar_1",
        "owner_account_id": "acct_garage_1",
        "name": "Garage du Centre",
        "email": "centre@mecalink.test",
        "phone": "01 42 00 11 22",
        "address": "12 Rue de Rivoli, 75004 Paris",
        "latitude": 48.8566,
        "longitude": 2.3522,
        "services": ["Dépannage", "Réparation", "Diagnostic"],
        "skills": ["Moteur", "Freinage", "Électricité"],
        "description": "Garage de proximité au cœur de Paris.",
        "opening_hours": "8h-19h",
        "rating": 4.6,
    },
    {
        "id": "gar_2",
        "owner_account_id": "acct_garage_2",
        "name": "Bastille Dépannage",
        "email": "bastille@mecalink.test",
        "phone": "01 43 55 66 77",
        "address": "40 Boulevard Beaumarchais, 75011 Paris",
        "latitude": 48.8553,
        "longitude": 2.3690,
        "services": ["Dépannage", "Remorquage"],
        "skills": ["Remorquage", "Batterie"],
        "description": "Intervention rapide 7j/7 sur tout l'est parisien.",
        "opening_hours": "24h/24",
        "rating": 4.2,
    },
    {
        "id": "gar_3",
        "owner_account_id": "acct_garage_3",
        "name": "Montparnasse Auto",
        "email": "montparnasse@mecalink.test",
        "phone": "01 45 38 90 12",
        "address": "5 Rue du Départ, 75014 Paris",
        "latitude": 48.8421,
        "longitude": 2.3219,
        "services": ["Réparation", "Pneumatiques"],
        "skills": ["Pneus", "Carrosserie"],
        "description": "Atelier mécanique toutes marques.",
        "opening_hours": "8h-18h",
        "rating": 4.0,
    },
    {
        "id": "gar_4",
        "owner_account_id": "acct_garage_4",
        "name": "Nanterre Remorquage",
        "email": "nanterre@mecalink.test",
        "phone": "01 47 21 43 65",
        "address": "88 Avenue de la République, 92000 Nanterre",
        "latitude": 48.8924,
        "longitude": 2.2069,
        "services": ["Remorquage", "Dépannage"],
        "skills": ["Remorquage", "Poids lourds"],
        "description": "Remorquage longue distance et véhicules utilitaires.",
        "opening_hours": "7h-20h",
        "rating": 3.9,
    },
]
