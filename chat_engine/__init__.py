from dotenv import load_dotenv

# Load environment variables from config directory
load_dotenv('config/.env')
load_dotenv('config/.env.local', override=True)
